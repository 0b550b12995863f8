from functools import wraps
from typing import Callable, List
import logging

from sqlalchemy.exc import SQLAlchemyError

from advanced_config import RATE_LIMITS
from config import JOIN_CHAT
from errors import ERROR_CODES, PermissionDeniedError
from utils import normalize_channel, now_ms

logger = logging.getLogger(__name__)


class RateLimiter:
    """Fixed-window counter per (action, user), kept in the store.

    Best-effort only: two concurrent requests may both read the same count.
    """

    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock

    def check(self, user_id: int, action: str, max_calls: int = None, period: int = None) -> bool:
        if max_calls is None or period is None:
            max_calls, period = RATE_LIMITS[action]
        key = f"rl:{action}:{user_id}"
        try:
            record = self.db.get(key) or {'start': 0, 'count': 0}
            now = self.clock()
            if not record.get('start') or now - record['start'] > period * 1000:
                self.db.put(key, {'start': now, 'count': 1})
                return True
            if record.get('count', 0) >= max_calls:
                return False
            record['count'] = record.get('count', 0) + 1
            self.db.put(key, record)
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Rate limiter unavailable for {action}:{user_id}: {e}")
            return True


class SecurityManager:
    def __init__(self, db, transport=None):
        self.db = db
        self.transport = transport

    # Required channels
    def required_channels(self) -> List[str]:
        stored = self.db.get('bot:join_channels')
        if isinstance(stored, list):
            return [c for c in (normalize_channel(str(x)) for x in stored) if c]
        default = normalize_channel(JOIN_CHAT)
        return [default] if default else []

    def add_channel(self, channel: str) -> List[str]:
        channel = normalize_channel(channel)
        channels = self.required_channels()
        if channel and channel not in channels:
            channels.append(channel)
        self.db.put('bot:join_channels', channels)
        return channels

    def remove_channel(self, index: int) -> List[str]:
        channels = self.required_channels()
        if 0 <= index < len(channels):
            channels.pop(index)
        self.db.put('bot:join_channels', channels)
        return channels

    async def check_membership(self, user_id: int) -> bool:
        """True when the user is a member of every required channel"""
        channels = self.required_channels()
        if not channels:
            return True
        if self.transport is None:
            return False
        for channel in channels:
            if not await self.transport.is_member(channel, user_id):
                return False
        return True

    # Blocks
    def is_blocked(self, user_id: int) -> bool:
        return bool(self.db.get(f"block:{user_id}"))

    def block(self, user_id: int, by: int = None):
        self.db.put(f"block:{user_id}", {'blocked': True, 'by': by, 'at': now_ms()})
        logger.info(f"User {user_id} blocked by {by}")

    def unblock(self, user_id: int):
        self.db.delete(f"block:{user_id}")


def admin_only(func):
    """Decorator for admin-only handlers taking a request as first argument"""
    @wraps(func)
    async def wrapper(self, req, *args, **kwargs):
        if not req.is_admin:
            raise PermissionDeniedError()
        return await func(self, req, *args, **kwargs)
    return wrapper


def rate_limit(action: str):
    """Rate limiting decorator backed by the store"""
    def decorator(func):
        @wraps(func)
        async def wrapper(self, req, *args, **kwargs):
            if not self.core.rate_limiter.check(req.user_id, action):
                await self.reply(req, ERROR_CODES['rate_limited'])
                return
            return await func(self, req, *args, **kwargs)
        return wrapper
    return decorator
