"""
Identity and entitlement ledger.

Balances live inside ``user:{uid}`` records and every change is a plain
read-modify-write against the store. Two requests touching the same balance
at the same time can both read the old value and the last write wins; there is
no lock or conditional write available to prevent it. All balance mutations go
through ``credit``, ``debit`` and ``transfer`` so that only this module changes
if the store ever gains atomic operations.
"""
from typing import Callable, List, Optional, Tuple
import logging

from advanced_config import TRANSFER_SETTINGS
from config import ADMIN_IDS
from errors import InsufficientResourceError, NotFoundError, ValidationError
from models import User
from utils import now_ms

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock

    # Users
    def get_user(self, user_id: int) -> Optional[User]:
        data = self.db.get(f"user:{user_id}")
        return User.from_dict(data) if data else None

    def save_user(self, user: User):
        self.db.put(f"user:{user.id}", user.to_dict())

    def user_ids(self) -> List[int]:
        return [int(x) for x in self.db.get_list('index:users')]

    def _index(self, user_id: int):
        ids = self.db.get_list('index:users')
        if user_id not in ids:
            ids.append(user_id)
            self.db.put('index:users', ids)

    def ensure_user(self, user_id: int) -> User:
        """Return the user, creating an empty record if it does not exist"""
        user = self.get_user(user_id)
        if user is None:
            now = self.clock()
            user = User(id=user_id, created_at=now, last_seen=now)
            self.save_user(user)
            self._index(user_id)
        return user

    def touch(self, user_id: int, username: str = None, first_name: str = '') -> Tuple[User, bool]:
        """Record a contact; returns the user and whether it was just created"""
        user = self.get_user(user_id)
        is_new = user is None
        now = self.clock()
        if is_new:
            user = User(id=user_id, created_at=now)
            self._index(user_id)
        user.username = username or user.username
        user.first_name = first_name or user.first_name
        user.last_seen = now
        self.save_user(user)
        if is_new:
            logger.info(f"New user {user_id} ({username})")
        return user, is_new

    # Balance primitives
    def balance(self, user_id: int) -> int:
        user = self.get_user(user_id)
        return user.diamonds if user else 0

    def credit(self, user_id: int, amount: int) -> int:
        if amount <= 0:
            raise ValidationError('❌ مقدار باید مثبت باشد.')
        user = self.ensure_user(user_id)
        user.diamonds = user.diamonds + amount
        self.save_user(user)
        logger.info(f"Credited {amount} to {user_id}, balance {user.diamonds}")
        return user.diamonds

    def debit(self, user_id: int, amount: int) -> bool:
        """Take ``amount`` from the balance; refuses and returns False if it would go negative"""
        if amount <= 0:
            raise ValidationError('❌ مقدار باید مثبت باشد.')
        user = self.get_user(user_id)
        if user is None or user.diamonds < amount:
            return False
        user.diamonds -= amount
        self.save_user(user)
        logger.info(f"Debited {amount} from {user_id}, balance {user.diamonds}")
        return True

    def transfer(self, from_id: int, to_id: int, amount: int) -> int:
        """Move diamonds between users; returns the sender's new balance"""
        if amount < TRANSFER_SETTINGS['min_amount'] or amount > TRANSFER_SETTINGS['max_amount']:
            raise ValidationError(
                f"❌ مقدار انتقال باید بین {TRANSFER_SETTINGS['min_amount']} و {TRANSFER_SETTINGS['max_amount']} باشد."
            )
        if from_id == to_id:
            raise ValidationError('❌ انتقال به خودتان ممکن نیست.')
        source = self.get_user(from_id)
        if source is None:
            raise NotFoundError()
        if source.diamonds < amount:
            raise InsufficientResourceError(need=amount, have=source.diamonds)
        # Between this debit and the credit below the two balances are briefly inconsistent
        if not self.debit(from_id, amount):
            raise InsufficientResourceError(need=amount, have=self.balance(from_id))
        self.credit(to_id, amount)
        return source.diamonds - amount

    def adjust(self, user_id: int, amount: int) -> int:
        """Admin balance change: positive credits, negative debits without going below zero"""
        if amount == 0:
            raise ValidationError('❌ مقدار نمی‌تواند صفر باشد.')
        if amount > 0:
            return self.credit(user_id, amount)
        if not self.debit(user_id, -amount):
            raise InsufficientResourceError(need=-amount, have=self.balance(user_id))
        return self.balance(user_id)

    # Admins
    def admin_ids(self) -> List[int]:
        stored = self.db.get('bot:admins')
        if isinstance(stored, list) and stored:
            return [int(x) for x in stored]
        return list(ADMIN_IDS)

    def set_admin_ids(self, ids: List[int]):
        unique = []
        for admin_id in ids:
            if int(admin_id) not in unique:
                unique.append(int(admin_id))
        self.db.put('bot:admins', unique)
        return unique

    def add_admin(self, user_id: int) -> List[int]:
        return self.set_admin_ids(self.admin_ids() + [user_id])

    def remove_admin(self, user_id: int) -> List[int]:
        remaining = [x for x in self.admin_ids() if x != user_id]
        if not remaining:
            raise ValidationError('❌ حداقل یک ادمین باید باقی بماند.')
        return self.set_admin_ids(remaining)
