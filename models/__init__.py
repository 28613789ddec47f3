"""SQLAlchemy models — re-export all."""

from models.user import UserProfile, APIKey  # noqa: F401
from models.case import Case, Field, View  # noqa: F401
from models.checkpoint import CaseCheckpoint  # noqa: F401
