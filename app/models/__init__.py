"""
SQLModel table models.

Tables are created from SQLModel.metadata at application startup
(see app.core.database.init_models).
"""

from app.models.account import AccountBase, Accounts
from app.models.refresh_fingerprint import RefreshFingerprints

__all__ = [
    "AccountBase",
    "Accounts",
    "RefreshFingerprints",
]
