from typing import Callable, List, Optional, Tuple
import logging

from advanced_config import LIMITS, TOKEN_SETTINGS
from errors import NotFoundError, ValidationError
from models import ContentType, FileItem
from utils import make_token, now_ms

logger = logging.getLogger(__name__)


class FileRegistry:
    """Uploaded items addressed by token, plus a newest-first index per owner"""

    def __init__(self, db, clock: Callable[[], int] = now_ms):
        self.db = db
        self.clock = clock

    def get(self, token: str) -> Optional[FileItem]:
        data = self.db.get(f"file:{token}")
        return FileItem.from_dict(data) if data else None

    def require(self, token: str) -> FileItem:
        item = self.get(token)
        if item is None:
            raise NotFoundError('❌ فایل یافت نشد.')
        return item

    def save(self, item: FileItem):
        self.db.put(f"file:{item.token}", item.to_dict())

    def create(self, owner: int, content_type: str, file_id: str = None, text: str = None,
               name: str = '', size: int = 0) -> FileItem:
        ContentType(content_type)
        token = make_token(TOKEN_SETTINGS['file_token_length'])
        while self.db.get(f"file:{token}") is not None:
            token = make_token(TOKEN_SETTINGS['file_token_length'])
        item = FileItem(
            token=token,
            owner=owner,
            type=content_type,
            file_id=file_id,
            text=text,
            name=(name or content_type)[:LIMITS['file_name_max']],
            size=int(size or 0),
            created_at=self.clock(),
        )
        self.save(item)
        self.db.prepend_unique(f"uploader:{owner}", token)
        logger.info(f"File {token} ({content_type}) created by {owner}")
        return item

    def replace_content(self, token: str, content_type: str, file_id: str = None, text: str = None,
                        name: str = '', size: int = 0) -> FileItem:
        """Swap the payload behind an existing token, keeping its counters and price"""
        ContentType(content_type)
        item = self.require(token)
        item.type = content_type
        item.file_id = file_id
        item.text = text
        item.name = (name or item.name)[:LIMITS['file_name_max']]
        item.size = int(size or 0)
        self.save(item)
        return item

    def delete(self, token: str) -> bool:
        item = self.get(token)
        if item is None:
            return False
        self.db.delete(f"file:{token}")
        self.db.remove_from_list(f"uploader:{item.owner}", token)
        logger.info(f"File {token} deleted")
        return True

    def rename(self, token: str, name: str) -> FileItem:
        name = (name or '').strip()
        if not name:
            raise ValidationError('❌ نام نمی‌تواند خالی باشد.')
        item = self.require(token)
        item.name = name[:LIMITS['file_name_max']]
        self.save(item)
        return item

    def set_cost(self, token: str, cost: int) -> FileItem:
        if cost < 0:
            raise ValidationError('❌ هزینه نمی‌تواند منفی باشد.')
        item = self.require(token)
        item.cost_points = cost
        self.save(item)
        return item

    def set_limit(self, token: str, max_downloads: int, delete_on_limit: bool = None) -> FileItem:
        if max_downloads < 0:
            raise ValidationError('❌ محدودیت نمی‌تواند منفی باشد.')
        item = self.require(token)
        item.max_downloads = max_downloads
        if delete_on_limit is not None:
            item.delete_on_limit = delete_on_limit
        self.save(item)
        return item

    def toggle_delete_on_limit(self, token: str) -> FileItem:
        item = self.require(token)
        item.delete_on_limit = not item.delete_on_limit
        self.save(item)
        return item

    def toggle(self, token: str) -> FileItem:
        item = self.require(token)
        item.disabled = not item.disabled
        self.save(item)
        return item

    def set_disabled(self, token: str, disabled: bool) -> FileItem:
        item = self.require(token)
        item.disabled = disabled
        self.save(item)
        return item

    def apply_meta(self, tokens: List[str], cost: int, max_downloads: int) -> int:
        """Apply one price and one limit to a batch; returns how many were updated"""
        updated = 0
        for token in tokens:
            item = self.get(token)
            if item is None:
                continue
            item.cost_points = cost
            item.max_downloads = max_downloads
            self.save(item)
            updated += 1
        return updated

    def list_tokens(self, owner: int) -> List[str]:
        return self.db.get_list(f"uploader:{owner}")

    def list_page(self, owner: int, page: int, page_size: int = None) -> Tuple[List[FileItem], int]:
        page_size = page_size or LIMITS['page_size']
        tokens = self.list_tokens(owner)
        total_pages = max(1, -(-len(tokens) // page_size))
        page = min(max(0, page), total_pages - 1)
        items = [item for item in (self.get(t) for t in tokens[page * page_size:(page + 1) * page_size]) if item]
        return items, total_pages

    def register_download(self, item: FileItem) -> bool:
        """Count one delivery; returns True if the item was purged for hitting its limit"""
        item.downloads += 1
        item.last_download = self.clock()
        if item.delete_on_limit and item.is_exhausted:
            self.delete(item.token)
            return True
        self.save(item)
        return False
