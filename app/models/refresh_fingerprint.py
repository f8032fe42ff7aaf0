"""
SQLModel-based RefreshFingerprint model.

Each row is one currently-valid refresh token of an account, stored as a keyed
hash of the raw token. A refresh token is accepted only while its row exists:
login adds a row, refresh swaps the row for a new one, logout deletes it and a
global logout deletes all rows of the account.
"""

from datetime import UTC, datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel


class RefreshFingerprints(SQLModel, table=True):
    """Database table for refresh-token fingerprints."""

    __tablename__ = "refresh_fingerprints"

    __table_args__ = (
        ForeignKeyConstraint(
            ["account_id"],
            ["accounts.id"],
            ondelete="CASCADE",
            onupdate="CASCADE",
            name="fk_refresh_fingerprints_account_id",
        ),
        Index("idx_refresh_fingerprints_account_id", "account_id"),
        Index("idx_refresh_fingerprints_fingerprint", "fingerprint", unique=True),
    )

    id: int | None = Field(default=None, primary_key=True)

    account_id: str = Field(max_length=32)

    # HMAC-SHA256 hex of the raw token - never store the token itself
    fingerprint: str = Field(max_length=64)

    issued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
