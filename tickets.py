from typing import Callable, List, Optional
import logging
import random

from advanced_config import LIMITS, TICKET_CATEGORIES
from errors import NotFoundError, StateError, ValidationError
from models import Ticket, TicketStatus
from utils import now_ms

logger = logging.getLogger(__name__)

_random = random.SystemRandom()


class TicketManager:
    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock

    def get(self, ticket_id: str) -> Optional[Ticket]:
        data = self.db.get(f"ticket:{ticket_id}")
        return Ticket.from_dict(data) if data else None

    def require(self, ticket_id: str) -> Ticket:
        ticket = self.get(ticket_id)
        if ticket is None:
            raise NotFoundError('❌ تیکت یافت نشد.')
        return ticket

    def save(self, ticket: Ticket):
        ticket.updated_at = self.clock()
        self.db.put(f"ticket:{ticket.id}", ticket.to_dict())

    def _new_id(self) -> str:
        while True:
            ticket_id = f"p{_random.randint(0, 999999999):09d}"
            if self.db.get(f"ticket:{ticket_id}") is None:
                return ticket_id

    def create(self, user_id: int, category: str, desc: str, username: str = None) -> Ticket:
        desc = (desc or '').strip()
        if category not in TICKET_CATEGORIES:
            raise ValidationError('❌ دسته‌بندی نامعتبر است.')
        if not desc:
            raise ValidationError('❌ توضیحات نمی‌تواند خالی باشد.')
        now = self.clock()
        ticket = Ticket(
            id=self._new_id(),
            user_id=user_id,
            username=username,
            category=category,
            subject=desc.splitlines()[0][:60],
            desc=desc[:LIMITS['ticket_desc_max']],
            created_at=now,
        )
        self.save(ticket)
        self.db.prepend_unique('tickets:index', ticket.id)
        self.db.prepend_unique(f"tickets:user:{user_id}", ticket.id)
        self.append_message(ticket.id, 'user', user_id, ticket.desc)
        logger.info(f"Ticket {ticket.id} opened by {user_id}")
        return ticket

    def append_message(self, ticket_id: str, sender: str, by: int, text: str) -> List[dict]:
        key = f"ticket:{ticket_id}:messages"
        messages = self.db.get_list(key)
        messages.append({'from': sender, 'by': by, 'at': self.clock(), 'text': text})
        messages = messages[-LIMITS['ticket_messages']:]
        self.db.put(key, messages)
        return messages

    def messages(self, ticket_id: str, limit: int = None) -> List[dict]:
        messages = self.db.get_list(f"ticket:{ticket_id}:messages")
        return messages[-limit:] if limit else messages

    def user_reply(self, ticket_id: str, user_id: int, text: str) -> Ticket:
        ticket = self.require(ticket_id)
        if ticket.user_id != user_id:
            raise NotFoundError('❌ تیکت یافت نشد.')
        if ticket.status == TicketStatus.CLOSED.value:
            raise StateError('⚠️ این تیکت بسته شده است.')
        self.append_message(ticket_id, 'user', user_id, text)
        self.save(ticket)
        return ticket

    def toggle_status(self, ticket_id: str) -> Ticket:
        ticket = self.require(ticket_id)
        ticket.status = (TicketStatus.OPEN.value if ticket.status == TicketStatus.CLOSED.value
                         else TicketStatus.CLOSED.value)
        self.save(ticket)
        return ticket

    def delete(self, ticket_id: str):
        ticket = self.get(ticket_id)
        self.db.delete(f"ticket:{ticket_id}")
        self.db.delete(f"ticket:{ticket_id}:messages")
        self.db.remove_from_list('tickets:index', ticket_id)
        if ticket:
            self.db.remove_from_list(f"tickets:user:{ticket.user_id}", ticket_id)

    def list_all(self, limit: int = 20) -> List[Ticket]:
        return [t for t in (self.get(i) for i in self.db.get_list('tickets:index')[:limit]) if t]

    def list_user(self, user_id: int, limit: int = 20) -> List[Ticket]:
        return [t for t in (self.get(i) for i in self.db.get_list(f"tickets:user:{user_id}")[:limit]) if t]
