"""
SQLModel-based Account models with inheritance for security

AccountBase (shared public fields)
    ├─> Accounts (database table, adds the password hash and internal fields)
    └─> AccountResponse (API schema, defined in app/schemas/auth.py)

The password hash lives only on the table model so it can never leak through
a response schema.
"""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel


def _new_account_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AccountBase(SQLModel):
    """Fields that are safe to expose via the API."""

    email: str = Field(max_length=255)
    name: str = Field(default="User", max_length=120)


class Accounts(AccountBase, table=True):
    """
    Database table for storefront accounts.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password_hash: bcrypt hash
    """

    __tablename__ = "accounts"

    __table_args__ = (Index("idx_accounts_email", "email", unique=True),)

    # Opaque identifier, also the "sub" claim of issued tokens
    id: str = Field(default_factory=_new_account_id, primary_key=True, max_length=32)

    password_hash: str = Field(max_length=255)

    # Role values from app.config.Role
    roles: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)
