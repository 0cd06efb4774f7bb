"""Tests for account lookups, slugs and merges."""

from datetime import datetime, timezone

import pytest
from httpx import AsyncClient

from fiscalhost.core.errors import NotFoundError, ValidationError
from fiscalhost.db.enums import AccountType, MemberRole
from fiscalhost.db.models import Account, Member, PaymentMethod, User
from fiscalhost.services import account_service


def _account(db, slug: str, **kwargs) -> Account:
    account = Account(
        type=kwargs.pop("type", AccountType.USER.value),
        name=kwargs.pop("name", slug.title()),
        slug=slug,
        data={},
        **kwargs,
    )
    db.add(account)
    db.flush()
    return account


def test_generate_slug_uses_first_free_suggestion(db):
    _account(db, "joe")
    assert account_service.generate_slug(db, ["Joe", "Joe Doe"]) == "joe-doe"


def test_generate_slug_appends_counter(db):
    _account(db, "joe")
    _account(db, "joe-1")
    assert account_service.generate_slug(db, ["Joe"]) == "joe-2"


def test_generate_slug_strips_accents_and_symbols(db):
    assert account_service.generate_slug(db, ["  Élodie & Co!  "]) == "elodie-co"


def test_generate_slug_never_reuses_deleted_slugs(db):
    _account(db, "joe", deleted_at=datetime.now(timezone.utc))
    assert account_service.generate_slug(db, ["Joe"]) == "joe-1"


def test_generate_slug_excludes_own_account(db):
    account = _account(db, "joe")
    assert account_service.generate_slug(db, ["Joe"], exclude_account_id=account.id) == "joe"


def test_generate_slug_falls_back_to_random(db):
    slug = account_service.generate_slug(db, [None, "!!!"])
    assert slug.startswith("user-")


def test_fetch_account_with_reference(db):
    account = _account(db, "webpack", type=AccountType.COLLECTIVE.value)

    assert account_service.fetch_account_with_reference(db, slug="Webpack").id == account.id
    assert account_service.fetch_account_with_reference(db, account_id=account.id).id == account.id

    with pytest.raises(ValidationError):
        account_service.fetch_account_with_reference(db)
    with pytest.raises(NotFoundError):
        account_service.fetch_account_with_reference(db, slug="missing")


def test_deleted_account_is_not_found(db):
    account = _account(db, "gone")
    account_service.soft_delete_account(db, account)

    with pytest.raises(NotFoundError):
        account_service.fetch_account_with_reference(db, slug="gone")


def test_is_admin_of(db, confirmed_user):
    collective = _account(db, "babel", type=AccountType.COLLECTIVE.value)

    assert account_service.is_admin_of(db, confirmed_user, confirmed_user.account)
    assert not account_service.is_admin_of(db, confirmed_user, collective)

    db.add(Member(
        member_account_id=confirmed_user.account_id,
        account_id=collective.id,
        role=MemberRole.BACKER.value,
    ))
    db.flush()
    assert not account_service.is_admin_of(db, confirmed_user, collective)

    db.add(Member(
        member_account_id=confirmed_user.account_id,
        account_id=collective.id,
        role=MemberRole.ADMIN.value,
    ))
    db.flush()
    assert account_service.is_admin_of(db, confirmed_user, collective)


def test_merge_moves_payment_methods_and_members(db):
    source = _account(db, "source")
    target = _account(db, "target")
    collective = _account(db, "babel", type=AccountType.COLLECTIVE.value)
    source_user = User(email="source@example.com", account_id=source.id)
    db.add(source_user)
    db.add(PaymentMethod(
        account_id=source.id, service="stripe", type="creditcard", data={}
    ))
    # Both back the collective: the duplicate membership is dropped
    db.add_all([
        Member(member_account_id=source.id, account_id=collective.id, role=MemberRole.BACKER.value),
        Member(member_account_id=target.id, account_id=collective.id, role=MemberRole.BACKER.value),
        Member(member_account_id=source.id, account_id=collective.id, role=MemberRole.FOLLOWER.value),
    ])
    db.flush()

    counts = account_service.merge_accounts(db, source, target)

    assert counts["payment_methods"] == 1
    assert counts["members"] == 1
    assert db.query(PaymentMethod).filter(PaymentMethod.account_id == target.id).count() == 1
    live_members = db.query(Member).filter(
        Member.account_id == collective.id,
        Member.deleted_at.is_(None),
    ).all()
    assert sorted(m.role for m in live_members) == ["BACKER", "FOLLOWER"]
    assert all(m.member_account_id == target.id for m in live_members)
    assert source.deleted_at is not None
    assert db.get(User, source_user.id).deleted_at is not None


def test_merge_into_itself_fails(db):
    account = _account(db, "solo")
    with pytest.raises(ValidationError):
        account_service.merge_accounts(db, account, account)


@pytest.mark.asyncio
async def test_get_account_route(client: AsyncClient, db):
    _account(db, "webpack", type=AccountType.COLLECTIVE.value)
    db.commit()

    response = await client.get("/accounts/webpack")
    assert response.status_code == 200
    assert response.json()["type"] == "COLLECTIVE"

    response = await client.get("/accounts/nope")
    assert response.status_code == 404
    assert response.json()["detail"] == "Account Not Found"


def test_merge_soft_deletes_source_users_held_in_session(db):
    source = _account(db, "source")
    target = _account(db, "target")
    source_user = User(email="source@example.com", account_id=source.id)
    db.add(source_user)
    db.flush()

    account_service.merge_accounts(db, source, target)

    # Same object, no refresh
    assert source_user.deleted_at is not None
    replacement = User(email="source@example.com", account_id=target.id)
    db.add(replacement)
    db.flush()
    assert account_service.get_user_for_account(db, source.id) is None
