import copy
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends
from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from gachalog.core.config import settings
from gachalog.core.db import get_db
from gachalog.core.exceptions import StoreConflictError
from gachalog.models.record import Record
from gachalog.utils.misc import get_utc_now


class RecordStore:
    """Keyed JSON persistence with optimistic read-modify-write support."""

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def _get_record(self, key: str) -> Record | None:
        # populate_existing so a row changed through another session is never served stale
        result = await self.db.exec(
            select(Record).where(Record.key == key).execution_options(populate_existing=True)
        )
        return result.first()

    async def get(self, key: str) -> Any | None:
        record = await self._get_record(key)
        return record.value if record else None

    async def get_with_version(self, key: str) -> tuple[Any | None, int | None]:
        """Return the value together with its version (None for both when missing)."""
        record = await self._get_record(key)
        if record is None:
            return None, None
        return record.value, record.version

    async def _update_row(self, key: str, value: Any, expected_version: int | None) -> int:
        statement = update(Record).where(col(Record.key) == key)
        if expected_version is not None:
            statement = statement.where(col(Record.version) == expected_version)
        result = await self.db.execute(
            statement.values(value=value, version=col(Record.version) + 1, updated_at=get_utc_now())
        )
        return result.rowcount

    async def _insert_row(self, key: str, value: Any) -> bool:
        self.db.add(Record(key=key, value=value))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            return False
        return True

    async def set(self, key: str, value: Any) -> None:
        """Unconditionally write a value (last writer wins)."""
        if await self._update_row(key, value, None):
            await self.db.commit()
            return

        if not await self._insert_row(key, value):
            # Lost an insert race, the row exists now
            await self._update_row(key, value, None)
            await self.db.commit()

    async def compare_and_set(self, key: str, value: Any, expected_version: int | None) -> None:
        """Write only if the stored version still matches.

        ``expected_version=None`` means the key is expected not to exist yet.

        Raises:
            StoreConflictError: If another writer got there first
        """
        if expected_version is None:
            if not await self._insert_row(key, value):
                raise StoreConflictError(key)
            return

        if not await self._update_row(key, value, expected_version):
            await self.db.rollback()
            raise StoreConflictError(key)
        await self.db.commit()

    @retry(
        stop=stop_after_attempt(settings.store_update_attempts),
        wait=wait_random(min=0.01, max=0.1),
        retry=retry_if_exception_type(StoreConflictError),
        reraise=True,
    )
    async def update(self, key: str, mutate: Callable[[Any | None], Any]) -> Any:
        """Apply ``mutate`` to the current value and store the result atomically.

        ``mutate`` receives a private copy of the current value (None when missing) and may be
        called several times when concurrent writers collide.
        """
        current, version = await self.get_with_version(key)
        new_value = mutate(copy.deepcopy(current))
        try:
            await self.compare_and_set(key, new_value, version)
        except StoreConflictError:
            logger.debug(f"Retrying update of {key} after a concurrent write")
            raise
        return new_value

    async def delete(self, key: str) -> bool:
        result = await self.db.execute(delete(Record).where(col(Record.key) == key))
        await self.db.commit()
        return result.rowcount > 0

    async def find_by_prefix(self, prefix: str) -> list[tuple[str, Any]]:
        result = await self.db.exec(
            select(Record)
            .where(col(Record.key).startswith(prefix, autoescape=True))
            .order_by(col(Record.key))
            .execution_options(populate_existing=True)
        )
        return [(record.key, record.value) for record in result.all()]
