"""
Shaadi Mantrana — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from mantrana.models.user import User
from mantrana.models.like import DailyLike
from mantrana.models.connection import Connection, ToastAck
from mantrana.models.match import Match
from mantrana.models.access import Invitation, PreapprovedEmail

__all__ = [
    "User",
    "DailyLike",
    "Connection",
    "ToastAck",
    "Match",
    "Invitation",
    "PreapprovedEmail",
]
