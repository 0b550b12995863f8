from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging

from cache_manager import SettingsStore, TTLCache
from config import MESSAGES
from delivery import Denied, DeliveryGate
from errors import BotError, PermissionDeniedError
from files import FileRegistry
from gifts import GiftEngine, RedeemResult
from ledger import Ledger
from lottery import LotteryEngine
from missions import MissionEngine
from purchases import PurchaseManager
from referrals import ReferralEngine
from security import RateLimiter, SecurityManager
from sessions import SessionStore
from tickets import TicketManager
from utils import now_ms

logger = logging.getLogger(__name__)


@dataclass
class Result:
    ok: bool
    value: Any = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def failed(cls, error: BotError) -> 'Result':
        return cls(ok=False, reason=error.reason, message=error.message)


class BotCore:
    """All engines over one store, plus the named entry points.

    Entry points return an outcome and never raise ``BotError``.
    """

    def __init__(self, db, transport, clock: Callable[[], int] = now_ms, settings_cache: TTLCache = None):
        self.db = db
        self.transport = transport
        self.clock = clock
        self.settings = SettingsStore(db, settings_cache or TTLCache(clock=clock))
        self.sessions = SessionStore(db)
        self.ledger = Ledger(db, clock)
        self.files = FileRegistry(db, clock)
        self.security = SecurityManager(db, transport)
        self.rate_limiter = RateLimiter(db, clock)
        self.referrals = ReferralEngine(db, self.ledger, transport, clock)
        self.missions = MissionEngine(db, self.ledger, self.referrals, clock)
        self.gifts = GiftEngine(db, self.ledger, clock)
        self.lottery = LotteryEngine(db, self.ledger, clock)
        self.purchases = PurchaseManager(db, self.ledger, clock)
        self.tickets = TicketManager(db, clock)
        self.delivery = DeliveryGate(self.ledger, self.files, self.settings, self.security,
                                     self.rate_limiter, self.referrals, transport, clock)

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.ledger.admin_ids()

    def _require_admin(self, admin_id: int):
        if not self.is_admin(admin_id):
            raise PermissionDeniedError()

    # Named entry points
    async def fetch_file(self, user_id: int, token: str, referrer_id: int = None, is_admin: bool = None):
        if is_admin is None:
            is_admin = self.is_admin(user_id)
        try:
            return await self.delivery.request_delivery(user_id, token, referrer_id, is_admin)
        except BotError as e:
            return Denied(e.reason, message=e.message)

    async def confirm_spend(self, user_id: int, token: str, quoted_cost: int, referrer_id: int = None,
                            is_admin: bool = None):
        if is_admin is None:
            is_admin = self.is_admin(user_id)
        try:
            return await self.delivery.confirm(user_id, token, quoted_cost, referrer_id, is_admin)
        except BotError as e:
            return Denied(e.reason, message=e.message)

    async def confirm_transfer(self, from_id: int, to_id: int, amount: int) -> Result:
        if not self.rate_limiter.check(from_id, 'transfer'):
            return Result(ok=False, reason='rate_limited')
        try:
            balance = self.ledger.transfer(from_id, to_id, amount)
        except BotError as e:
            return Result.failed(e)
        await self.transport.send_message(to_id, MESSAGES['transfer_received'].format(amount=amount, frm=from_id))
        return Result(ok=True, value=balance)

    async def submit_mission_answer(self, user_id: int, mission_id: str, answer) -> Result:
        try:
            result = self.missions.submit_answer(user_id, mission_id, answer)
        except BotError as e:
            return Result.failed(e)
        return Result(ok=result.correct, value=result, reason=None if result.correct else 'wrong_answer')

    async def redeem_gift(self, user_id: int, code: str) -> RedeemResult:
        if not self.rate_limiter.check(user_id, 'gift'):
            return RedeemResult(ok=False, reason='rate_limited')
        try:
            return self.gifts.redeem(user_id, code)
        except BotError as e:
            return RedeemResult(ok=False, reason=e.reason)

    async def admin_give_balance(self, admin_id: int, target_id: int, amount: int) -> Result:
        try:
            self._require_admin(admin_id)
            balance = self.ledger.adjust(target_id, amount)
        except BotError as e:
            return Result.failed(e)
        logger.info(f"Admin {admin_id} adjusted balance of {target_id} by {amount}")
        if amount > 0:
            await self.transport.send_message(target_id, f"🎁 {amount} الماس توسط مدیریت به حساب شما اضافه شد.")
        return Result(ok=True, value=balance)

    async def admin_toggle_file(self, admin_id: int, token: str) -> Result:
        try:
            self._require_admin(admin_id)
            item = self.files.toggle(token)
        except BotError as e:
            return Result.failed(e)
        return Result(ok=True, value=item)

    async def admin_create_mission(self, admin_id: int, draft: dict) -> Result:
        try:
            self._require_admin(admin_id)
            mission = self.missions.create(
                draft.get('title'),
                int(draft.get('reward') or 0),
                draft.get('period') or 'once',
                draft.get('type') or 'generic',
                draft.get('config'),
            )
        except BotError as e:
            return Result.failed(e)
        except ValueError:
            return Result(ok=False, reason='invalid_input', message='❌ مقادیر مأموریت نامعتبر است.')
        return Result(ok=True, value=mission)
