"""
Delivery gate.

``request_delivery`` runs the gates in order and either hands the item over
(free items), returns a quote (priced items) or denies with a reason code.
``confirm`` re-runs every gate before debiting, since time has passed since
the quote. The balance read, the debit and the counters are separate store
writes; see ``ledger`` for the race this leaves open.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Union
import logging

from errors import ERROR_CODES
from models import FileItem
from utils import day_key, is_valid_token, now_ms

logger = logging.getLogger(__name__)


@dataclass
class Delivered:
    item: FileItem
    charged: int = 0
    purged: bool = False
    referral_paid: bool = False


@dataclass
class AwaitingPayment:
    item: FileItem
    cost: int
    balance: int
    referrer_id: Optional[int] = None

    @property
    def affordable(self) -> bool:
        return self.balance >= self.cost


@dataclass
class Denied:
    reason: str
    need: Optional[int] = None
    have: Optional[int] = None
    message: Optional[str] = None

    @property
    def text(self) -> str:
        if self.message:
            return self.message
        if self.reason == 'insufficient_balance' and self.need is not None:
            return f"❌ موجودی کافی نیست. نیاز: {self.need} الماس، موجودی: {self.have} الماس"
        return ERROR_CODES.get(self.reason, ERROR_CODES['not_found'])


Outcome = Union[Delivered, AwaitingPayment, Denied]


def parse_deep_link(payload: str):
    """``d_<token>[_<ref>]`` -> (token, ref) or None"""
    if not payload or not payload.startswith('d_'):
        return None
    parts = payload.split('_')
    token = parts[1] if len(parts) > 1 else ''
    ref = int(parts[2]) if len(parts) > 2 and parts[2].isdigit() else None
    return token, ref


class DeliveryGate:
    def __init__(self, ledger, files, settings, security, rate_limiter, referrals, transport,
                 clock: Callable[[], int] = now_ms):
        self.db = ledger.db
        self.ledger = ledger
        self.files = files
        self.settings = settings
        self.security = security
        self.rate_limiter = rate_limiter
        self.referrals = referrals
        self.transport = transport
        self.clock = clock

    def daily_usage(self, user_id: int) -> int:
        return int((self.db.get(f"usage:{user_id}:{day_key(self.clock())}") or {}).get('count', 0))

    def _count_usage(self, user_id: int):
        key = f"usage:{user_id}:{day_key(self.clock())}"
        record = self.db.get(key) or {'count': 0}
        record['count'] = record.get('count', 0) + 1
        self.db.put(key, record)

    async def _check(self, user_id: int, token: str, is_admin: bool) -> Union[FileItem, Denied]:
        if not is_valid_token(token):
            return Denied('invalid_token')
        item = self.files.get(token)
        if item is None:
            return Denied('not_found')
        if not is_admin and (not self.settings.is_enabled() or self.settings.is_update_mode()):
            return Denied('service_unavailable')
        if item.disabled:
            return Denied('item_disabled')
        if item.is_exhausted:
            if item.delete_on_limit:
                self.files.delete(token)
            return Denied('quota_exhausted')
        if not is_admin and not await self.security.check_membership(user_id):
            return Denied('join_required')
        if item.cost_points > 0 and not is_admin:
            daily_limit = self.settings.get()['daily_limit']
            if daily_limit > 0 and self.daily_usage(user_id) >= daily_limit:
                return Denied('daily_cap')
        return item

    async def request_delivery(self, user_id: int, token: str, referrer_id: int = None,
                               is_admin: bool = False) -> Outcome:
        checked = await self._check(user_id, token, is_admin)
        if isinstance(checked, Denied):
            return checked
        item = checked
        if item.cost_points > 0 and not is_admin:
            if not self.rate_limiter.check(user_id, 'confirm_spend'):
                return Denied('rate_limited')
            return AwaitingPayment(item=item, cost=item.cost_points,
                                   balance=self.ledger.balance(user_id), referrer_id=referrer_id)
        return await self._deliver(user_id, item, 0, referrer_id, is_admin)

    async def confirm(self, user_id: int, token: str, quoted_cost: int, referrer_id: int = None,
                      is_admin: bool = False) -> Outcome:
        if not self.rate_limiter.check(user_id, 'confirm_spend_click'):
            return Denied('rate_limited')
        checked = await self._check(user_id, token, is_admin)
        if isinstance(checked, Denied):
            return checked
        item = checked
        cost = 0 if is_admin else item.cost_points
        if cost != quoted_cost:
            # Price changed since the quote: quote again instead of charging
            return AwaitingPayment(item=item, cost=cost, balance=self.ledger.balance(user_id),
                                   referrer_id=referrer_id)
        balance = self.ledger.balance(user_id)
        if balance < cost:
            return Denied('insufficient_balance', need=cost, have=balance)
        return await self._deliver(user_id, item, cost, referrer_id, is_admin)

    async def _deliver(self, user_id: int, item: FileItem, cost: int, referrer_id: Optional[int],
                       is_admin: bool = False) -> Outcome:
        if cost > 0 and not self.ledger.debit(user_id, cost):
            return Denied('insufficient_balance', need=cost, have=self.ledger.balance(user_id))

        sent = await self.transport.send_content(user_id, item.type, file_id=item.file_id, text=item.text,
                                                 caption=item.name if item.type != 'text' else None)
        if not sent:
            if cost > 0:
                self.ledger.credit(user_id, cost)
            logger.warning(f"Delivery of {item.token} to {user_id} failed")
            return Denied('delivery_failed')

        purged = self.files.register_download(item)
        if not is_admin and self.settings.get()['daily_limit'] > 0:
            self._count_usage(user_id)

        referral_paid = False
        if referrer_id and referrer_id != item.owner:
            self.referrals.attribute(user_id, referrer_id)
            referral_paid = await self.referrals.credit(user_id, referrer_id)

        logger.info(f"Delivered {item.token} to {user_id} (cost {cost})")
        return Delivered(item=item, charged=cost, purged=purged, referral_paid=referral_paid)
