"""
Account API endpoints.
"""

from fastapi import APIRouter, Depends, Path

from app.api.dependencies import Store
from app.core.auth import CurrentIdentity, ensure_owner
from app.core.csrf import csrf_protect
from app.core.errors import NotFoundError
from app.schemas.auth import AccountResponse

router = APIRouter(prefix="/accounts", tags=["Accounts"], dependencies=[Depends(csrf_protect)])


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(
    identity: CurrentIdentity,
    store: Store,
    account_id: str = Path(..., max_length=32),
) -> AccountResponse:
    """
    Get an account by id.

    Customers may only read their own account; for any other id they get the
    same 404 as for an id that does not exist.
    """
    ensure_owner(identity, account_id)

    account = await store.find_account_by_id(account_id)
    if account is None:
        raise NotFoundError("Account not found")
    return AccountResponse.model_validate(account, from_attributes=True)
