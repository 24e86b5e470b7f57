"""
PeakSelf Backend — Client Error Reporting
==========================================

What:  POST /api/errors/log receives crash reports from the frontend error
       boundary and writes them to the server log.
Why:   Browser errors are otherwise invisible to operators.
How:   Each report gets an errorId that the frontend shows to the user, so a
       support request can be matched to the log line.

The path is CSRF-exempt: the boundary may fire before a token was fetched.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Request

from app.exceptions import ValidationError
from app.middleware.rate_limit import api_limiter, client_ip
from app.schemas.common import ClientErrorReport, ErrorResponse, SuccessResponse

logger = logging.getLogger("peakself.client_errors")

router = APIRouter(prefix="/api/errors", tags=["Errors"])


@router.post(
    "/log",
    response_model=SuccessResponse,
    responses={400: {"model": ErrorResponse}},
    dependencies=[Depends(api_limiter)],
    summary="Log a frontend error",
)
async def log_client_error(report: ClientErrorReport, request: Request) -> SuccessResponse:
    if not report.message:
        raise ValidationError("Error message is required")

    error_id = str(uuid.uuid4())
    logger.error(
        "Frontend error %s: %s",
        error_id,
        report.message,
        extra={
            "error_id": error_id,
            "client_message": report.message,
            "stack": report.stack,
            "component_stack": report.componentStack,
            "user_agent": report.userAgent,
            "url": report.url,
            "client_timestamp": report.timestamp,
            "client_ip": client_ip(request),
        },
    )
    return SuccessResponse(
        success=True,
        message="Error logged successfully",
        data={"errorId": error_id},
    )
