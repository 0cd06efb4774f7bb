from click.testing import CliRunner

from fiscalhost import cli
from fiscalhost.db.models import Account
from fiscalhost.services import guest_account_service


def test_confirm_guest_command(db, monkeypatch):
    profile = guest_account_service.get_or_create_guest_profile(db, email="jane@example.com")
    account_id = profile.account.id
    monkeypatch.setattr(cli, "SessionLocal", lambda: db)

    result = CliRunner().invoke(
        cli.cli, ["confirm-guest", "--email", "Jane@example.com", "--name", "Jane"]
    )

    assert result.exit_code == 0, result.output
    assert "Confirmed" in result.output
    account = db.get(Account, account_id)
    assert account.is_guest is False
    assert account.slug == "jane"


def test_confirm_guest_command_unknown_email(db, monkeypatch):
    monkeypatch.setattr(cli, "SessionLocal", lambda: db)

    result = CliRunner().invoke(cli.cli, ["confirm-guest", "--email", "ghost@example.com"])

    assert result.exit_code == 0
    assert "No user found" in result.output


def test_confirm_guest_command_already_confirmed(db, confirmed_user, monkeypatch):
    monkeypatch.setattr(cli, "SessionLocal", lambda: db)

    result = CliRunner().invoke(cli.cli, ["confirm-guest", "--email", confirmed_user.email])

    assert "no pending confirmation" in result.output


def test_clear_rate_limits_command():
    result = CliRunner().invoke(cli.cli, ["clear-rate-limits"])
    assert result.exit_code == 0
    assert "Rate limits cleared" in result.output
