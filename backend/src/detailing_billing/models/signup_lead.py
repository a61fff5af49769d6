"""Signup lead model for funnel tracking."""
from sqlalchemy import Boolean, Column, DateTime, String

from detailing_billing.models.base import Base


class SignupLead(Base):
    """Prospect captured during signup; converted when the first checkout completes."""

    __tablename__ = "signup_leads"

    email = Column(String, nullable=True, index=True)
    converted = Column(Boolean, nullable=False, default=False)
    converted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<SignupLead(id={self.id}, converted={self.converted})>"
