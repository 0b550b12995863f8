from typing import Callable, Optional
import logging

from advanced_config import REFERRAL_SETTINGS
from config import MESSAGES
from utils import now_ms, week_key

logger = logging.getLogger(__name__)


class ReferralEngine:
    """Referral attribution and the one-time referrer bonus.

    The bonus is guarded by ``ref_credited`` on the referred user, shared by
    sign-up links and file links alike.
    """

    def __init__(self, db, ledger, transport=None, clock: Callable[[], int] = now_ms):
        self.db = db
        self.ledger = ledger
        self.transport = transport
        self.clock = clock

    def attribute(self, user_id: int, referrer_id: Optional[int]) -> bool:
        """Set ``referred_by`` if it is not set yet (first write wins)"""
        if not referrer_id or referrer_id == user_id:
            return False
        user = self.ledger.ensure_user(user_id)
        if user.referred_by:
            return False
        user.referred_by = referrer_id
        self.ledger.save_user(user)
        return True

    def weekly_count(self, user_id: int, week: str = None) -> int:
        record = self.db.get(f"ref_week:{user_id}:{week or week_key(self.clock())}") or {}
        return int(record.get('count', 0))

    async def credit(self, user_id: int, referrer_id: Optional[int]) -> bool:
        """Pay the referrer once per referred user; returns True if paid now"""
        if not referrer_id or referrer_id == user_id:
            return False
        referrer = self.ledger.get_user(referrer_id)
        if referrer is None:
            return False
        user = self.ledger.ensure_user(user_id)
        if user.ref_credited:
            return False

        user.ref_credited = True
        if not user.referred_by:
            user.referred_by = referrer_id
        self.ledger.save_user(user)

        bonus = REFERRAL_SETTINGS['bonus']
        self.ledger.credit(referrer_id, bonus)
        referrer = self.ledger.get_user(referrer_id)
        referrer.referrals += 1
        self.ledger.save_user(referrer)

        key = f"ref_week:{referrer_id}:{week_key(self.clock())}"
        record = self.db.get(key) or {'count': 0}
        record['count'] = record.get('count', 0) + 1
        self.db.put(key, record)
        logger.info(f"Referral bonus paid to {referrer_id} for {user_id}")

        if self.transport:
            await self.transport.send_message(referrer_id, MESSAGES['referral_credited'].format(bonus=bonus))
        return True
