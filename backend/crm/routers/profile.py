from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from crm.auth import get_current_user_id
from crm.database import get_db
from crm.exceptions import CRMError
from crm.routers.errors import to_http_exception
from crm.schemas.profile import AppContext, BusinessProfile, BusinessProfileUpdate, DashboardStats, InvoiceSettings
from crm.services.profile_service import profile_service
from crm.services.stats_service import stats_service

router = APIRouter(prefix="/api", tags=["profile"])


@router.get("/session", response_model=AppContext)
def get_session_context(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """
    Application context for the signed-in user.

    Clients read the business name shown in navigation from here.
    """
    try:
        return profile_service.build_app_context(db, user_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/profile", response_model=BusinessProfile)
def get_profile(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    profile = profile_service.get_profile(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.put("/profile", response_model=BusinessProfile)
def update_profile(
    update: BusinessProfileUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return profile_service.update_profile(db, user_id, update)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/profile/logo", response_model=BusinessProfile)
async def upload_logo(
    file: UploadFile = File(...),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Upload a business logo (JPEG, PNG or PDF, up to 5MB)"""
    content = await file.read()
    try:
        return profile_service.upload_logo(db, user_id, file.filename, file.content_type, content)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/settings/invoice", response_model=InvoiceSettings)
def get_invoice_settings(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return profile_service.get_invoice_settings(db, user_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.put("/settings/invoice", response_model=InvoiceSettings)
def update_invoice_settings(
    new_settings: InvoiceSettings,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return profile_service.update_invoice_settings(db, user_id, new_settings)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/dashboard/stats", response_model=DashboardStats)
def get_dashboard_stats(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return stats_service.dashboard_stats(db, user_id)
