from dataclasses import dataclass
from typing import Callable, List, Optional
import logging

from errors import NotFoundError, ValidationError
from models import GiftCode
from utils import now_ms

logger = logging.getLogger(__name__)


@dataclass
class RedeemResult:
    ok: bool
    amount: int = 0
    reason: Optional[str] = None


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


class GiftEngine:
    def __init__(self, db, ledger, clock: Callable[[], int] = now_ms):
        self.db = db
        self.ledger = ledger
        self.clock = clock

    def get(self, code: str) -> Optional[GiftCode]:
        data = self.db.get(f"gift:{normalize_code(code)}")
        return GiftCode.from_dict(data) if data else None

    def save(self, gift: GiftCode):
        self.db.put(f"gift:{gift.code}", gift.to_dict())

    def list(self) -> List[GiftCode]:
        return [g for g in (self.get(c) for c in self.db.get_list('gift:index')) if g]

    def create(self, code: str, amount: int, max_uses: int = 0) -> GiftCode:
        code = normalize_code(code)
        if not code or ' ' in code or ':' in code:
            raise ValidationError('❌ کد نامعتبر است.')
        if amount <= 0:
            raise ValidationError('❌ مقدار باید مثبت باشد.')
        if max_uses < 0:
            raise ValidationError('❌ سقف استفاده نمی‌تواند منفی باشد.')
        if self.get(code) is not None:
            raise ValidationError(reason='duplicate')
        gift = GiftCode(code=code, amount=amount, max_uses=max_uses, created_at=self.clock())
        self.save(gift)
        self.db.prepend_unique('gift:index', code)
        logger.info(f"Gift code {code} created: {amount} x {max_uses or 'unlimited'}")
        return gift

    def toggle(self, code: str) -> GiftCode:
        gift = self.get(code)
        if gift is None:
            raise NotFoundError()
        gift.disabled = not gift.disabled
        self.save(gift)
        return gift

    def delete(self, code: str):
        code = normalize_code(code)
        self.db.delete(f"gift:{code}")
        self.db.remove_from_list('gift:index', code)

    def redeem(self, user_id: int, code: str) -> RedeemResult:
        code = normalize_code(code)
        gift = self.get(code) if code else None
        if gift is None:
            return RedeemResult(ok=False, reason='not_found')
        if gift.disabled:
            return RedeemResult(ok=False, reason='disabled')
        if gift.capacity_reached:
            return RedeemResult(ok=False, reason='capacity_reached')
        marker = f"giftused:{code}:{user_id}"
        if self.db.get(marker):
            return RedeemResult(ok=False, reason='already_redeemed')

        self.ledger.credit(user_id, gift.amount)
        self.db.put(marker, {'at': self.clock()})
        gift.used += 1
        self.save(gift)
        logger.info(f"Gift code {code} redeemed by {user_id}")
        return RedeemResult(ok=True, amount=gift.amount)
