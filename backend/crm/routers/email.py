"""
Email API router - invoice email dispatch, open-tracking beacon and tracking diagnostics
"""
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from crm.config import settings
from crm.database import get_db
from crm.exceptions import EmailProviderError, ValidationError
from crm.schemas.email import (
    DebugActionResponse,
    EmailOpenResponse,
    SendEmailResponse,
    TrackingCheckResponse,
)
from crm.services.email_dispatch_service import EmailDispatchService, get_email_dispatch_service
from crm.services.tracking_service import PIXEL_HEADERS, TRACKING_PIXEL, tracking_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["email"])


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=SendEmailResponse(success=False, error=error).model_dump(exclude_none=True),
    )


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("cf-connecting-ip") or (request.client.host if request.client else None)


@router.post("/send-email", response_model=SendEmailResponse)
async def send_email(
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: EmailDispatchService = Depends(get_email_dispatch_service)
):
    """
    Send an invoice email with an open-tracking beacon appended.

    Every contract field is required; the body is checked before the mail
    provider is contacted.
    """
    try:
        payload = await request.json()
    except ValueError:
        return _failure(400, "Request body must be valid JSON")
    if not isinstance(payload, dict):
        return _failure(400, "Request body must be a JSON object")

    try:
        email_request = dispatcher.validate_payload(payload)
        await dispatcher.dispatch(db, email_request)
    except ValidationError as e:
        logger.info(f"Rejected send request: {e.message}")
        return _failure(400, e.message)
    except EmailProviderError as e:
        return _failure(502, e.message)
    except Exception as e:
        logger.error(f"Error in send-email: {e}", exc_info=True)
        return _failure(500, str(e))

    return SendEmailResponse(success=True, message="Email sent successfully")


@router.get("/track-email-open")
def track_email_open(
    request: Request,
    invoice_id: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Open-tracking beacon. Always answers with the 1x1 transparent GIF, even
    when parameters are missing or the open can't be recorded.
    """
    if invoice_id and customer_id:
        try:
            tracking_service.record_open(
                db,
                invoice_id,
                customer_id,
                ip_address=client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
        except Exception as e:
            # The mail client must never see a broken image
            logger.error(f"Error tracking email open: {e}", exc_info=True)
    else:
        logger.info("Beacon fetched without invoice_id/customer_id; open not recorded")

    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=PIXEL_HEADERS)


@router.get("/debug-email-tracking", response_model=Union[TrackingCheckResponse, DebugActionResponse])
def debug_email_tracking(
    action: str = Query(..., description="check_tracking, test_tracking or fix_policies"),
    invoice_id: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    """Operational tooling for the tracking pipeline; disabled unless DEBUG_TOOLS_ENABLED is set"""
    if not settings.debug_tools_enabled:
        raise HTTPException(status_code=404, detail="Not found")

    if action == "check_tracking":
        result = tracking_service.check_tracking(db, invoice_id)
        result["opens_details"] = [EmailOpenResponse.model_validate(o) for o in result["opens_details"]]
        return TrackingCheckResponse(**result)
    if action == "test_tracking":
        if not invoice_id or not customer_id:
            raise HTTPException(status_code=400, detail="invoice_id and customer_id are required")
        return DebugActionResponse(**tracking_service.test_tracking(db, invoice_id, customer_id))
    if action == "fix_policies":
        return DebugActionResponse(**tracking_service.repair_storage(db))

    raise HTTPException(status_code=400, detail=f"Unknown action: {action}")
