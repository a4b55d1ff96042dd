"""
Business profile, invoice settings and the session application context.

Reads go through the read retry policy; writes are attempted once.
"""
import asyncio
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm.config import settings
from crm.exceptions import PersistenceError, ValidationError
from crm.models.profile import Profile
from crm.models.setting import Setting
from crm.schemas.invoice import TaxConfig
from crm.schemas.profile import AppContext, BusinessProfile, BusinessProfileUpdate, InvoiceSettings
from crm.services.storage_service import storage_service
from crm.utils.retry import RetryPolicy, read_retry_policy

logger = logging.getLogger(__name__)

INVOICE_SETTINGS_TYPE = "invoice"
ALLOWED_LOGO_TYPES = {"image/jpeg", "image/png", "application/pdf"}


def default_invoice_settings() -> InvoiceSettings:
    return InvoiceSettings(
        tax=TaxConfig(
            enabled=settings.default_tax_enabled,
            rate=settings.default_tax_rate,
            label=settings.default_tax_label,
        ),
        currency=settings.default_currency,
        terms=settings.default_terms,
    )


class ProfileService:

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy or read_retry_policy

    def _attempt(self, db: Session, query):
        def attempt():
            try:
                return query()
            except SQLAlchemyError:
                # Leave the session usable for the next attempt
                db.rollback()
                raise
        return attempt

    def _read(self, db: Session, query, name: str):
        return self.retry_policy.run(self._attempt(db, query), name=name)

    async def _read_async(self, db: Session, query, name: str):
        """Same as _read, but each attempt runs in a worker thread and backoff is awaited"""
        attempt = self._attempt(db, query)
        return await self.retry_policy.run_async(lambda: asyncio.to_thread(attempt), name=name)

    def get_profile(self, db: Session, user_id: UUID) -> Optional[BusinessProfile]:
        profile = self._read(db, lambda: self._profile_row(db, user_id), name="get_profile")
        return BusinessProfile.model_validate(profile) if profile else None

    async def get_profile_async(self, db: Session, user_id: UUID) -> Optional[BusinessProfile]:
        profile = await self._read_async(db, lambda: self._profile_row(db, user_id), name="get_profile")
        return BusinessProfile.model_validate(profile) if profile else None

    def _profile_row(self, db: Session, user_id: UUID) -> Optional[Profile]:
        return db.query(Profile).filter(Profile.id == user_id).first()

    def update_profile(self, db: Session, user_id: UUID, update: BusinessProfileUpdate) -> BusinessProfile:
        changes = update.model_dump(exclude_unset=True)
        if "business_type" in changes and changes["business_type"] is not None:
            changes["business_type"] = changes["business_type"].value
        return self._save_profile(db, user_id, changes, "update business profile")

    def upload_logo(self, db: Session, user_id: UUID, filename: str, content_type: Optional[str], content: bytes) -> BusinessProfile:
        """Store a logo file and point the profile at its public URL"""
        if content_type not in ALLOWED_LOGO_TYPES:
            raise ValidationError("Please upload a JPEG, PNG, or PDF file", fields=["logo"])
        if len(content) > settings.logo_max_bytes:
            raise ValidationError("File size must be less than 5MB", fields=["logo"])

        storage_key = storage_service.build_logo_key(user_id, filename or "logo")
        storage_service.upload_file(content, storage_key, content_type)
        logo_url = storage_service.get_public_url(storage_key)
        logger.info(f"Uploaded logo for user {user_id} to {storage_key}")

        return self._save_profile(db, user_id, {"logo_url": logo_url}, "upload logo")

    def _save_profile(self, db: Session, user_id: UUID, changes: dict, action: str) -> BusinessProfile:
        try:
            profile = db.query(Profile).filter(Profile.id == user_id).first()
            if not profile:
                profile = Profile(id=user_id)
                db.add(profile)
            for field, value in changes.items():
                setattr(profile, field, value)
            db.commit()
            db.refresh(profile)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action} for user {user_id}: {e}")
            raise PersistenceError(f"Failed to {action}. Please try again.")
        return BusinessProfile.model_validate(profile)

    def get_invoice_settings(self, db: Session, user_id: UUID) -> InvoiceSettings:
        """Per-user invoice settings; the defaults are written on first read"""
        row = self._read(
            db,
            lambda: db.query(Setting).filter(
                Setting.user_id == user_id,
                Setting.type == INVOICE_SETTINGS_TYPE,
            ).first(),
            name="get_invoice_settings",
        )
        if row:
            return InvoiceSettings.model_validate(row.settings)

        defaults = default_invoice_settings()
        try:
            db.add(Setting(user_id=user_id, type=INVOICE_SETTINGS_TYPE, settings=defaults.model_dump(mode="json")))
            db.commit()
            logger.info(f"Initialized invoice settings for user {user_id}")
        except SQLAlchemyError as e:
            db.rollback()
            # Defaults still apply for this request; the row is retried on the next read
            logger.error(f"Failed to initialize invoice settings for user {user_id}: {e}")
        return defaults

    def update_invoice_settings(self, db: Session, user_id: UUID, new_settings: InvoiceSettings) -> InvoiceSettings:
        try:
            row = db.query(Setting).filter(
                Setting.user_id == user_id,
                Setting.type == INVOICE_SETTINGS_TYPE,
            ).first()
            if row:
                row.settings = new_settings.model_dump(mode="json")
            else:
                db.add(Setting(user_id=user_id, type=INVOICE_SETTINGS_TYPE, settings=new_settings.model_dump(mode="json")))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update invoice settings for user {user_id}: {e}")
            raise PersistenceError("Failed to update settings. Please try again.")
        return new_settings

    def build_app_context(self, db: Session, user_id: UUID) -> AppContext:
        profile = self.get_profile(db, user_id)
        return AppContext(
            user_id=user_id,
            business_name=profile.display_name if profile else "Your Business",
            profile=profile,
            invoice_settings=self.get_invoice_settings(db, user_id),
        )


profile_service = ProfileService()
