"""
CSRF token issuance.
"""

from fastapi import APIRouter, Request, Response

from app.core.csrf import CsrfGuard
from app.schemas.auth import CsrfTokenResponse

router = APIRouter(tags=["Security"])


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def get_csrf_token(request: Request, response: Response) -> CsrfTokenResponse:
    """
    Issue (or re-issue) the CSRF token for the caller's session.

    The token is also set as a readable cookie. Echo it back in the
    X-CSRF-Token header (or a ``_csrf`` body field / query parameter) on every
    POST, PUT, PATCH and DELETE. Fetch it again after login, since logging in
    starts a new session.
    """
    guard: CsrfGuard = request.app.state.csrf_guard
    return CsrfTokenResponse(csrf_token=guard.generate_token(request, response))
