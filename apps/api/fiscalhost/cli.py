"""CLI tools for platform administration."""

import click

from fiscalhost.core.errors import AppError
from fiscalhost.core.rate_limit import reset_rate_limits
from fiscalhost.db.base import Base
from fiscalhost.db.models import User
from fiscalhost.db.session import SessionLocal, engine
from fiscalhost.services import guest_account_service
from fiscalhost.utils.normalization import normalize_email


@click.group()
def cli():
    """Fiscal host CLI tools."""
    pass


@cli.command()
def create_tables():
    """
    Create all tables from the models (local/dev databases).

    Production databases are managed with Alembic migrations.
    """
    Base.metadata.create_all(bind=engine)
    click.echo("✅ Tables created")


@cli.command()
@click.option("--email", required=True, help="Email of the guest to confirm")
@click.option("--name", default=None, help="Profile name to set")
def confirm_guest(email: str, name: str | None):
    """
    Confirm a guest account on behalf of its owner (support requests).

    Example:
        python -m fiscalhost.cli confirm-guest --email "jane@example.com" --name "Jane"
    """
    db = SessionLocal()
    try:
        user = db.query(User).filter(
            User.email == normalize_email(email),
            User.deleted_at.is_(None),
        ).first()
        if not user:
            click.echo(f"❌ No user found for {email}")
            return
        if not user.email_confirmation_token:
            click.echo(f"❌ {email} has no pending confirmation")
            return

        try:
            account = guest_account_service.confirm_guest_account(
                db, user.email_confirmation_token, name=name
            )
        except AppError as e:
            click.echo(f"❌ {e.message}")
            return

        click.echo(f"✅ Confirmed {email} as '{account.name}' (@{account.slug})")
    finally:
        db.close()


@cli.command()
def clear_rate_limits():
    """Reset all rate limit counters."""
    reset_rate_limits()
    click.echo("✅ Rate limits cleared")


if __name__ == "__main__":
    cli()
