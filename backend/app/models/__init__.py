"""ORM models. Importing this package registers every table on Base.metadata."""

from app.models.email_verification_token import EmailVerificationToken
from app.models.pending_registration import PendingRegistration
from app.models.user import User

__all__ = ["EmailVerificationToken", "PendingRegistration", "User"]
