"""
Admin entry point.

Every /api/admin route sits behind the admin rate limiter and require_admin,
which rechecks the role in the database whenever a JWT is presented.
"""

from fastapi import APIRouter, Depends

from app.middleware.auth import require_admin
from app.middleware.rate_limit import admin_limiter
from app.schemas.auth import AdminHomeResponse, AdminSection, AdminUser, CurrentUser
from app.schemas.common import ErrorResponse

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(admin_limiter)],
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not an admin", "model": ErrorResponse},
    },
)

ADMIN_SECTIONS = [
    AdminSection(key="overview", label="Overview"),
    AdminSection(key="users", label="Users"),
    AdminSection(key="content", label="Content"),
    AdminSection(key="settings", label="Settings"),
]


@router.get("", response_model=AdminHomeResponse, summary="Admin welcome")
async def admin_home(current: CurrentUser = Depends(require_admin)) -> AdminHomeResponse:
    return AdminHomeResponse(
        message="Welcome, admin",
        user=AdminUser(
            id=current.id,
            email=current.email,
            role=current.role,
            authSource=current.source,
        ),
        sections=ADMIN_SECTIONS,
    )
