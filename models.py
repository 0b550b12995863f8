from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional


class ContentType(Enum):
    TEXT = "text"
    DOCUMENT = "document"
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    VOICE = "voice"


class MissionPeriod(Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"


class MissionType(Enum):
    GENERIC = "generic"
    QUIZ = "quiz"
    QUESTION = "question"
    INVITE = "invite"


class PurchaseStatus(Enum):
    AWAITING_RECEIPT = "awaiting_receipt"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class TicketStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


class Record:
    """Dataclass mixin for records stored as JSON"""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass
class User(Record):
    id: int
    username: Optional[str] = None
    first_name: str = ''
    diamonds: int = 0
    referrals: int = 0
    referred_by: Optional[int] = None
    ref_credited: bool = False
    joined: bool = False
    created_at: int = 0
    last_seen: int = 0


@dataclass
class FileItem(Record):
    token: str
    owner: int
    type: str = ContentType.DOCUMENT.value
    file_id: Optional[str] = None
    text: Optional[str] = None
    name: str = ''
    size: int = 0
    cost_points: int = 0
    downloads: int = 0
    max_downloads: int = 0
    delete_on_limit: bool = False
    disabled: bool = False
    created_at: int = 0
    last_download: Optional[int] = None

    @property
    def is_exhausted(self) -> bool:
        return self.max_downloads > 0 and self.downloads >= self.max_downloads


@dataclass
class Mission(Record):
    id: str
    title: str
    reward: int
    period: str = MissionPeriod.ONCE.value
    type: str = MissionType.GENERIC.value
    config: Dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    created_at: int = 0


@dataclass
class MissionProgress(Record):
    completed: int = 0
    map: Dict[str, int] = field(default_factory=dict)
    weekly_last_ts: int = 0


@dataclass
class Purchase(Record):
    id: str
    user_id: int
    pkg_id: str
    diamonds: int
    price_toman: int
    status: str = PurchaseStatus.AWAITING_RECEIPT.value
    receipt_file_id: Optional[str] = None
    receipt_is_photo: bool = False
    created_at: int = 0
    updated_at: int = 0
    processed_by: Optional[int] = None
    processed_at: Optional[int] = None


@dataclass
class GiftCode(Record):
    code: str
    amount: int
    max_uses: int = 0
    used: int = 0
    disabled: bool = False
    created_at: int = 0

    @property
    def capacity_reached(self) -> bool:
        return self.max_uses > 0 and self.used >= self.max_uses


@dataclass
class Ticket(Record):
    id: str
    user_id: int
    username: Optional[str] = None
    category: str = ''
    subject: str = ''
    desc: str = ''
    status: str = TicketStatus.OPEN.value
    created_at: int = 0
    updated_at: int = 0


@dataclass
class LotteryConfig(Record):
    enabled: bool = False
    winners: int = 0
    reward_diamonds: int = 0
    run_every_hours: int = 24
    next_run_at: int = 0
