"""Signup lead conversion tracking."""
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from detailing_billing.metrics import signup_lead_conversion_failures_total
from detailing_billing.models.base import utcnow
from detailing_billing.models.signup_lead import SignupLead

logger = structlog.get_logger(__name__)


class SignupLeadService:
    """Service for the signup funnel's lead records."""

    def __init__(self, db: AsyncSession):
        """Initialize signup lead service with database session."""
        self.db = db

    async def mark_converted(self, lead_id: str) -> bool:
        """
        Mark a lead converted after its checkout completed.

        Runs in a SAVEPOINT: a failure is logged and rolled back to the
        savepoint without affecting the surrounding reconciliation.

        Args:
            lead_id: Lead id from checkout metadata

        Returns:
            True when a lead was updated
        """
        try:
            lead_uuid = UUID(lead_id)
        except ValueError:
            signup_lead_conversion_failures_total.inc()
            logger.warning("signup_lead_id_invalid", signup_lead_id=lead_id)
            return False

        try:
            async with self.db.begin_nested():
                result = await self.db.execute(
                    update(SignupLead)
                    .where(SignupLead.id == lead_uuid)
                    .values(converted=True, converted_at=utcnow())
                )
        except SQLAlchemyError as e:
            signup_lead_conversion_failures_total.inc()
            logger.warning("signup_lead_conversion_failed", signup_lead_id=lead_id, error=str(e))
            return False

        if result.rowcount == 0:
            logger.warning("signup_lead_not_found", signup_lead_id=lead_id)
            return False

        logger.info("signup_lead_converted", signup_lead_id=lead_id)
        return True
