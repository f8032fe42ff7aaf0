"""
Admin API endpoints.

All routes require the admin role; the role is taken from the access token,
so a role change takes effect for the target account at its next refresh.
"""

from fastapi import APIRouter, Depends, Path

from app.api.dependencies import Sessions, Store
from app.core.auth import AdminIdentity
from app.core.csrf import csrf_protect
from app.core.errors import NotFoundError
from app.core.logging import get_logger
from app.schemas.auth import AccountResponse, MessageResponse, RoleUpdateRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(csrf_protect)])


@router.patch("/accounts/{account_id}/roles", response_model=AccountResponse)
async def update_account_roles(
    payload: RoleUpdateRequest,
    admin: AdminIdentity,
    store: Store,
    account_id: str = Path(..., max_length=32),
) -> AccountResponse:
    """Replace the role list of an account."""
    account = await store.find_account_by_id(account_id)
    if account is None:
        raise NotFoundError("Account not found")

    roles = [role.value for role in payload.roles]
    account = await store.update_roles(account, roles)
    logger.info(
        "account_roles_updated",
        admin_id=admin.account_id,
        target_account_id=account.id,
        roles=account.roles,
    )
    return AccountResponse.model_validate(account, from_attributes=True)


@router.post("/accounts/{account_id}/revoke-sessions", response_model=MessageResponse)
async def revoke_account_sessions(
    admin: AdminIdentity,
    sessions: Sessions,
    account_id: str = Path(..., max_length=32),
) -> MessageResponse:
    """Log an account out of every device."""
    revoked = await sessions.revoke_sessions(account_id)
    logger.info(
        "account_sessions_revoked",
        admin_id=admin.account_id,
        target_account_id=account_id,
        revoked=revoked,
    )
    return MessageResponse(message=f"Revoked {revoked} session(s)")
