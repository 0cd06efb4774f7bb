"""Public account endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fiscalhost.core.deps import get_db
from fiscalhost.schemas.account import AccountRead
from fiscalhost.services import account_service

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("/{slug}", response_model=AccountRead)
def get_account(slug: str, db: Session = Depends(get_db)):
    account = account_service.fetch_account_with_reference(db, slug=slug)
    return AccountRead.model_validate(account)
