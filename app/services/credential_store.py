"""
Credential store: accounts and their refresh-token fingerprints.

All writes commit before returning so that a caller holding a per-account
lock releases it only after the change is durable. Fingerprint removal and
rotation are conditional on the fingerprint still being present, which makes
"consume this refresh token" a single atomic step at the database level: of
two concurrent consumers only one sees a deleted row.
"""

from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ConflictError
from app.core.logging import get_logger
from app.models.account import Accounts
from app.models.refresh_fingerprint import RefreshFingerprints

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """Persistence operations used by the session manager and guards."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def find_account_by_email(self, email: str) -> Accounts | None:
        result = await self._db.execute(
            select(Accounts).where(Accounts.email == normalize_email(email))  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def find_account_by_id(self, account_id: str) -> Accounts | None:
        return await self._db.get(Accounts, account_id)

    async def create_account(
        self,
        *,
        email: str,
        password_hash: str,
        name: str,
        roles: Sequence[str],
    ) -> Accounts:
        """
        Insert a new account.

        Raises:
            ConflictError: an account with this email already exists
        """
        account = Accounts(
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            roles=list(roles),
        )
        self._db.add(account)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            logger.info("account_email_conflict", error=str(exc.orig))
            raise ConflictError("An account with this email already exists") from exc
        await self._db.refresh(account)
        return account

    async def update_roles(self, account: Accounts, roles: Sequence[str]) -> Accounts:
        account.roles = list(dict.fromkeys(roles))
        self._db.add(account)
        await self._db.commit()
        await self._db.refresh(account)
        return account

    async def update_profile(self, account: Accounts, *, name: str | None = None) -> Accounts:
        if name is not None:
            account.name = name
        self._db.add(account)
        await self._db.commit()
        await self._db.refresh(account)
        return account

    async def add_fingerprint(self, account_id: str, fingerprint: str) -> None:
        self._db.add(
            RefreshFingerprints(
                account_id=account_id,
                fingerprint=fingerprint,
                issued_at=datetime.now(UTC),
            )
        )
        await self._db.commit()

    async def has_fingerprint(self, account_id: str, fingerprint: str) -> bool:
        result = await self._db.execute(
            select(func.count())
            .select_from(RefreshFingerprints)
            .where(
                RefreshFingerprints.account_id == account_id,  # type: ignore[arg-type]
                RefreshFingerprints.fingerprint == fingerprint,  # type: ignore[arg-type]
            )
        )
        return bool(result.scalar_one())

    async def list_fingerprints(self, account_id: str) -> list[RefreshFingerprints]:
        result = await self._db.execute(
            select(RefreshFingerprints)
            .where(RefreshFingerprints.account_id == account_id)  # type: ignore[arg-type]
            .order_by(RefreshFingerprints.issued_at, RefreshFingerprints.id)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def _delete_fingerprint(self, account_id: str, fingerprint: str) -> bool:
        result = await self._db.execute(
            delete(RefreshFingerprints).where(
                RefreshFingerprints.account_id == account_id,  # type: ignore[arg-type]
                RefreshFingerprints.fingerprint == fingerprint,  # type: ignore[arg-type]
            )
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def remove_fingerprint(self, account_id: str, fingerprint: str) -> bool:
        """Delete one fingerprint. Returns False if it was already gone."""
        removed = await self._delete_fingerprint(account_id, fingerprint)
        await self._db.commit()
        return removed

    async def rotate_fingerprint(self, account_id: str, old: str, new: str) -> bool:
        """
        Replace ``old`` with ``new`` in one transaction.

        The new fingerprint is written only if ``old`` was still present, so a
        consumed or revoked refresh token can never be traded for a fresh one.
        """
        if not await self._delete_fingerprint(account_id, old):
            await self._db.commit()
            return False
        self._db.add(
            RefreshFingerprints(account_id=account_id, fingerprint=new, issued_at=datetime.now(UTC))
        )
        await self._db.commit()
        return True

    async def clear_fingerprints(self, account_id: str) -> int:
        """Revoke every refresh token of the account. Returns how many were removed."""
        result = await self._db.execute(
            delete(RefreshFingerprints).where(RefreshFingerprints.account_id == account_id)  # type: ignore[arg-type]
        )
        await self._db.commit()
        return int(result.rowcount or 0)  # type: ignore[attr-defined]
