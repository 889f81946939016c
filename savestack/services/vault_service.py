"""Vault service for per-user AI provider credentials.

Reads and upserts rows of the remote ``ai_secrets`` table. Every call is
bounded by a fixed timeout and requires an identity session; failures are
translated into ``VaultError`` codes instead of leaking driver exceptions.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from savestack.db.models import AISecret
from savestack.models import FailureCode, Provider, Session
from savestack.services.credential_cache import CredentialCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL "undefined_table"
MISSING_TABLE_SQLSTATE = "42P01"

# Dialects with INSERT .. ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class VaultError(Exception):
    """Exception for secret store errors."""

    def __init__(self, message: str, code: FailureCode = FailureCode.UNKNOWN_IO_ERROR):
        self.message = message
        self.code = code
        super().__init__(message)


@dataclass
class VaultLookup:
    """A fetch result that keeps the reason a credential was not found."""
    credential: Optional[str] = None
    error: Optional[FailureCode] = None

    @property
    def found(self) -> bool:
        return self.credential is not None


def is_missing_table(exc: BaseException) -> bool:
    """Check whether a database error means the secrets table does not exist."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == MISSING_TABLE_SQLSTATE:
        return True
    message = str(exc).lower()
    return "no such table" in message or "undefinedtable" in message


class VaultService:
    """Time-bounded client for the remote secret store."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        cache: CredentialCache,
        timeout: float = 2.0,
    ):
        self.session_maker = session_maker
        self.cache = cache
        self.timeout = timeout

    async def fetch(self, session: Optional[Session], provider: Provider) -> Optional[str]:
        """Fetch a credential, degrading every failure to None."""
        return (await self.lookup(session, provider)).credential

    async def lookup(self, session: Optional[Session], provider: Provider) -> VaultLookup:
        """Fetch a credential and report why it is missing, without raising."""
        try:
            user_id = self._require_identity(session)
            credential = await self._bounded(self._select(user_id, provider), "fetch")
        except VaultError as e:
            logger.debug(f"Vault fetch for {provider.value} failed: {e.code.value}")
            return VaultLookup(error=e.code)

        return VaultLookup(credential=credential or None)

    async def store(self, session: Optional[Session], provider: Provider, credential: str) -> None:
        """Upsert a credential for (user, provider) and set its cache flag.

        Raises:
            VaultError: If there is no session or the write did not succeed.
        """
        user_id = self._require_identity(session)
        await self._bounded(self._upsert(user_id, provider, credential), "store")
        self.cache.set_flag(provider)
        logger.info(f"Stored {provider.value} credential for user {user_id}")

    async def check_store(self) -> Optional[FailureCode]:
        """Probe the secrets table. Returns None when the store is usable."""
        try:
            await self._bounded(self._probe(), "probe")
        except VaultError as e:
            return e.code
        return None

    def _require_identity(self, session: Optional[Session]) -> str:
        if session is None:
            raise VaultError("Auth required to access Vault.", FailureCode.IDENTITY_REQUIRED)
        return session.user_id

    async def _bounded(self, operation: Awaitable[T], name: str) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Vault {name} timed out after {self.timeout}s")
            raise VaultError(f"Vault {name} timed out", FailureCode.TIMEOUT)
        except SQLAlchemyError as e:
            if is_missing_table(e):
                logger.warning("Vault table 'ai_secrets' missing.")
                raise VaultError("Vault table 'ai_secrets' missing", FailureCode.STORE_UNAVAILABLE)
            logger.error(f"Vault {name} failed: {e}")
            raise VaultError(f"Vault {name} failed: {e}", FailureCode.UNKNOWN_IO_ERROR)
        except OSError as e:
            logger.error(f"Vault {name} could not reach the store: {e}")
            raise VaultError(f"Vault {name} failed: {e}", FailureCode.UNKNOWN_IO_ERROR)

    async def _select(self, user_id: str, provider: Provider) -> Optional[str]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(AISecret.encrypted_key).where(
                    AISecret.user_id == user_id,
                    AISecret.provider == provider.value,
                )
            )
            return result.scalar_one_or_none()

    async def _upsert(self, user_id: str, provider: Provider, credential: str) -> None:
        async with self.session_maker() as db:
            dialect = db.get_bind().dialect.name
            insert = _UPSERT_INSERTS.get(dialect)
            if insert is None:
                raise VaultError(f"Vault store does not support {dialect}", FailureCode.UNKNOWN_IO_ERROR)
            now = datetime.utcnow()
            stmt = insert(AISecret).values(
                id=uuid.uuid4(),
                user_id=user_id,
                provider=provider.value,
                encrypted_key=credential,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[AISecret.user_id, AISecret.provider],
                set_={
                    "encrypted_key": stmt.excluded.encrypted_key,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await db.execute(stmt)
            await db.commit()

    async def _probe(self) -> None:
        async with self.session_maker() as db:
            await db.execute(select(AISecret.id).limit(1))
