"""GET /api/csrf-token: hands the browser its double-submit token."""

from fastapi import APIRouter, Request, Response

from app.middleware.csrf import generate_csrf_token
from app.schemas.common import CsrfTokenResponse

router = APIRouter(prefix="/api", tags=["CSRF"])


@router.get("/csrf-token", response_model=CsrfTokenResponse, summary="Fetch a CSRF token")
async def csrf_token(request: Request, response: Response) -> CsrfTokenResponse:
    # Echo this value in X-CSRF-Token on every POST/PUT/PATCH/DELETE
    return CsrfTokenResponse(csrfToken=generate_csrf_token(request, response))
