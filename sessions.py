from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models import Record

# Pending kinds that only an admin may resume
ADMIN_KINDS = {
    'upload', 'bulk_upload', 'bulk_meta', 'replace',
    'set_cost', 'set_limit', 'broadcast', 'join_add', 'add_admin',
    'give_balance', 'set_welcome', 'set_daily_limit', 'set_buttons',
    'mission_create', 'mission_edit', 'mission_quiz', 'mission_question', 'mission_invite',
    'gift_create', 'lottery_config', 'admin_ticket_reply', 'support_reply',
}


@dataclass
class Pending(Record):
    """The one multi-step interaction a user is in the middle of.

    ``kind`` names the flow, ``step`` the field collected next, ``target`` the
    entity the flow acts on and ``draft`` the fields collected so far.
    """
    kind: str
    step: str = ''
    target: Optional[str] = None
    draft: Dict[str, Any] = field(default_factory=dict)

    @property
    def admin_only(self) -> bool:
        return self.kind in ADMIN_KINDS


@dataclass
class Session:
    pending: Optional[Pending] = None
    pending_download: Optional[Dict[str, Any]] = None
    pending_ref: Optional[int] = None
    tokens: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        if self.pending:
            data['pending'] = self.pending.to_dict()
        if self.pending_download:
            data['pending_download'] = self.pending_download
        if self.pending_ref:
            data['pending_ref'] = self.pending_ref
        if self.tokens:
            data['tokens'] = self.tokens
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Session':
        data = data or {}
        pending = data.get('pending')
        return cls(
            pending=Pending.from_dict(pending) if isinstance(pending, dict) and pending.get('kind') else None,
            pending_download=data.get('pending_download'),
            pending_ref=data.get('pending_ref'),
            tokens=list(data.get('tokens') or []),
        )


class SessionStore:
    def __init__(self, db):
        self.db = db

    def get(self, user_id: int) -> Session:
        return Session.from_dict(self.db.get(f"session:{user_id}"))

    def save(self, user_id: int, session: Session):
        self.db.put(f"session:{user_id}", session.to_dict())

    def clear(self, user_id: int):
        self.db.put(f"session:{user_id}", {})

    def begin(self, user_id: int, kind: str, step: str = '', target=None, draft=None, tokens=None) -> Pending:
        """Start a flow, silently replacing whatever was in progress"""
        pending = Pending(kind=kind, step=step, target=None if target is None else str(target), draft=dict(draft or {}))
        self.save(user_id, Session(pending=pending, tokens=list(tokens or [])))
        return pending

    def advance(self, user_id: int, session: Session, step: str, **draft_updates) -> Pending:
        session.pending.step = step
        session.pending.draft.update(draft_updates)
        self.save(user_id, session)
        return session.pending
