from typing import Callable, List, Optional
import logging
import random

from advanced_config import DIAMOND_PACKAGES, LIMITS
from errors import NotFoundError, StateError
from models import Purchase, PurchaseStatus
from utils import now_ms

logger = logging.getLogger(__name__)

_random = random.SystemRandom()


def get_package(package_id: str) -> Optional[dict]:
    for package in DIAMOND_PACKAGES:
        if package['id'] == package_id:
            return package
    return None


class PurchaseManager:
    """Manual diamond top-ups: awaiting_receipt -> pending_review -> approved | rejected"""

    def __init__(self, db, ledger, clock: Callable[[], int] = now_ms):
        self.db = db
        self.ledger = ledger
        self.clock = clock

    def get(self, purchase_id: str) -> Optional[Purchase]:
        data = self.db.get(f"purchase:{purchase_id}")
        return Purchase.from_dict(data) if data else None

    def require(self, purchase_id: str) -> Purchase:
        purchase = self.get(purchase_id)
        if purchase is None:
            raise NotFoundError('❌ خرید یافت نشد.')
        return purchase

    def save(self, purchase: Purchase):
        purchase.updated_at = self.clock()
        self.db.put(f"purchase:{purchase.id}", purchase.to_dict())

    def _new_id(self) -> str:
        while True:
            purchase_id = str(_random.randint(10000000, 99999999))
            if self.db.get(f"purchase:{purchase_id}") is None:
                return purchase_id

    def create(self, user_id: int, package_id: str) -> Purchase:
        package = get_package(package_id)
        if package is None:
            raise NotFoundError('❌ بسته یافت نشد.')
        now = self.clock()
        purchase = Purchase(
            id=self._new_id(),
            user_id=user_id,
            pkg_id=package['id'],
            diamonds=package['diamonds'],
            price_toman=package['price_toman'],
            created_at=now,
        )
        self.save(purchase)
        self.db.prepend_unique('index:purchases', purchase.id, cap=LIMITS['purchase_index'])
        logger.info(f"Purchase {purchase.id} created for {user_id} ({package['id']})")
        return purchase

    def attach_receipt(self, purchase_id: str, user_id: int, file_id: str, is_photo: bool) -> Purchase:
        purchase = self.require(purchase_id)
        if purchase.user_id != user_id:
            raise NotFoundError('❌ خرید یافت نشد.')
        if purchase.status != PurchaseStatus.AWAITING_RECEIPT.value:
            raise StateError('⚠️ رسید این خرید قبلاً ثبت شده است.')
        purchase.receipt_file_id = file_id
        purchase.receipt_is_photo = is_photo
        purchase.status = PurchaseStatus.PENDING_REVIEW.value
        self.save(purchase)
        return purchase

    def _decide(self, purchase_id: str, admin_id: int, status: PurchaseStatus) -> Purchase:
        purchase = self.require(purchase_id)
        if purchase.status in (PurchaseStatus.APPROVED.value, PurchaseStatus.REJECTED.value):
            raise StateError('⚠️ این خرید قبلاً بررسی شده است.')
        if purchase.status != PurchaseStatus.PENDING_REVIEW.value:
            raise StateError('⚠️ رسید این خرید هنوز ارسال نشده است.')
        purchase.status = status.value
        purchase.processed_by = admin_id
        purchase.processed_at = self.clock()
        self.save(purchase)
        return purchase

    def approve(self, purchase_id: str, admin_id: int) -> Purchase:
        """Approve and credit; the status write comes first so a repeat tap cannot credit twice"""
        purchase = self._decide(purchase_id, admin_id, PurchaseStatus.APPROVED)
        self.ledger.credit(purchase.user_id, purchase.diamonds)
        logger.info(f"Purchase {purchase_id} approved by {admin_id}")
        return purchase

    def reject(self, purchase_id: str, admin_id: int) -> Purchase:
        purchase = self._decide(purchase_id, admin_id, PurchaseStatus.REJECTED)
        logger.info(f"Purchase {purchase_id} rejected by {admin_id}")
        return purchase

    def recent(self, limit: int = 20) -> List[Purchase]:
        ids = self.db.get_list('index:purchases')[:limit]
        return [p for p in (self.get(i) for i in ids) if p]
