from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from services.api.app.db.database import db_session
from services.api.app.db.models import KvCounter, KvListEntry, KvSetMember
from services.api.app.services.kv_base import KeyValueStoreUnavailableError, ListWindow
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class SqlKeyValueStore:
    """Key-value primitives on the application database.

    Fine for a single host (SQLite) or any server SQLAlchemy can reach. Calls run in a
    worker thread so the event loop keeps serving SSE connections.
    """

    backend = "sql"

    async def append_capped(self, key: str, value: str, cap: int) -> int:
        return await self._run("append_capped", self._append_capped, key, value, cap)

    async def read_after(self, key: str, after: int) -> ListWindow:
        return await self._run("read_after", self._read_after, key, after)

    async def incr(self, key: str) -> int:
        return await self._run("incr", self._incr, key)

    async def get_int(self, key: str) -> int:
        return await self._run("get_int", self._get_int, key)

    async def set_add(self, key: str, member: str) -> bool:
        return await self._run("set_add", self._set_add, key, member)

    async def set_remove(self, key: str, member: str) -> bool:
        return await self._run("set_remove", self._set_remove, key, member)

    async def set_contains(self, key: str, member: str) -> bool:
        return await self._run("set_contains", self._set_contains, key, member)

    async def set_members(self, key: str) -> list[str]:
        return await self._run("set_members", self._set_members, key)

    async def close(self) -> None:
        return None

    async def _run(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            raise KeyValueStoreUnavailableError(self.backend, operation, e) from e

    def _append_capped(self, key: str, value: str, cap: int) -> int:
        with db_session() as db:
            entry = KvListEntry(key=key, value=value)
            db.add(entry)
            db.flush()
            seq = entry.seq

            # Oldest seq still inside the cap; everything before it goes.
            threshold = (
                select(KvListEntry.seq)
                .where(KvListEntry.key == key)
                .order_by(KvListEntry.seq.desc())
                .offset(max(1, cap) - 1)
                .limit(1)
                .scalar_subquery()
            )
            db.execute(
                delete(KvListEntry).where(KvListEntry.key == key, KvListEntry.seq < threshold)
            )
            db.commit()
            return seq

    def _read_after(self, key: str, after: int) -> ListWindow:
        with db_session() as db:
            rows = db.execute(
                select(KvListEntry.seq, KvListEntry.value)
                .where(KvListEntry.key == key, KvListEntry.seq > after)
                .order_by(KvListEntry.seq.asc())
            ).all()
            last = db.execute(
                select(func.max(KvListEntry.seq)).where(KvListEntry.key == key)
            ).scalar_one_or_none()

        entries = [(int(seq), value) for seq, value in rows]
        return ListWindow(entries=entries, last_seq=max(after, int(last or 0)))

    def _incr(self, key: str) -> int:
        with db_session() as db:
            for _attempt in range(2):
                result = db.execute(
                    update(KvCounter)
                    .where(KvCounter.key == key)
                    .values(value=KvCounter.value + 1, updated_at=datetime.now(timezone.utc))
                )
                if result.rowcount == 0:
                    db.add(KvCounter(key=key, value=1))
                try:
                    db.commit()
                    break
                except IntegrityError:
                    # Another writer created the row first; bump theirs instead.
                    db.rollback()

            counter = db.get(KvCounter, key)
            return int(counter.value) if counter is not None else 0

    def _get_int(self, key: str) -> int:
        with db_session() as db:
            counter = db.get(KvCounter, key)
            return int(counter.value) if counter is not None else 0

    def _set_add(self, key: str, member: str) -> bool:
        with db_session() as db:
            if db.get(KvSetMember, (key, member)) is not None:
                return False
            db.add(KvSetMember(key=key, member=member))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True

    def _set_remove(self, key: str, member: str) -> bool:
        with db_session() as db:
            result = db.execute(
                delete(KvSetMember).where(KvSetMember.key == key, KvSetMember.member == member)
            )
            db.commit()
            return result.rowcount > 0

    def _set_contains(self, key: str, member: str) -> bool:
        with db_session() as db:
            return db.get(KvSetMember, (key, member)) is not None

    def _set_members(self, key: str) -> list[str]:
        with db_session() as db:
            rows = db.execute(
                select(KvSetMember.member)
                .where(KvSetMember.key == key)
                .order_by(KvSetMember.member.asc())
            ).scalars()
            return list(rows)
