"""
Session registry: at most one in-progress booking session per user.

Sessions live in the key/value store under roombot:session:<user_id> with a
TTL refreshed on every save. Each user has an exclusive lock so events for the
same user run one at a time, while different users never block each other.
"""

import json
import logging
from typing import List, Optional

from roombot.booking.models import BookingSession
from roombot.shared.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

SESSION_PREFIX = "roombot:session:"


class SessionRegistry:

    def __init__(self, kv: KeyValueStore, session_ttl: int):
        self._kv = kv
        self.session_ttl = session_ttl

    def user_lock(self, user_id: str):
        """Exclusive access to one user's session"""
        return self._kv.lock(f"session:{user_id}")

    async def get(self, user_id: str) -> Optional[BookingSession]:
        raw = await self._kv.get(f"{SESSION_PREFIX}{user_id}")
        if raw is None:
            return None
        try:
            return BookingSession.from_dict(json.loads(raw))
        except (KeyError, ValueError) as e:
            logger.error(f" Dropping unreadable session for {user_id}: {e}")
            await self.delete(user_id)
            return None

    async def save(self, session: BookingSession) -> None:
        await self._kv.set(
            f"{SESSION_PREFIX}{session.user_id}",
            json.dumps(session.to_dict()),
            ttl=self.session_ttl,
        )

    async def delete(self, user_id: str) -> bool:
        return await self._kv.delete(f"{SESSION_PREFIX}{user_id}") > 0

    async def active_user_ids(self) -> List[str]:
        keys = await self._kv.scan_keys(SESSION_PREFIX)
        return [key[len(SESSION_PREFIX):] for key in keys]

    async def clear(self) -> int:
        keys = await self._kv.scan_keys(SESSION_PREFIX)
        if not keys:
            return 0
        return await self._kv.delete(*keys)
