import math
import re
import secrets
import string
import time
from datetime import datetime
from typing import Optional

import pytz

from advanced_config import TOKEN_SETTINGS
from config import TIMEZONE
from errors import ValidationError

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_RE = re.compile(TOKEN_SETTINGS['pattern'])

DAY_MS = 24 * 60 * 60 * 1000


def now_ms() -> int:
    return int(time.time() * 1000)


def _utc(ts: int) -> datetime:
    return datetime.fromtimestamp(ts / 1000, tz=pytz.utc)


def day_key(ts: Optional[int] = None) -> str:
    """UTC calendar day, e.g. 20240131"""
    return _utc(now_ms() if ts is None else ts).strftime('%Y%m%d')


def week_key(ts: Optional[int] = None) -> str:
    """ISO week of the UTC day, e.g. 2024-W05"""
    year, week, _ = _utc(now_ms() if ts is None else ts).isocalendar()
    return f"{year}-W{week:02d}"


def make_token(length: int = 20) -> str:
    # Alphanumeric only: deep link payloads use '_' as a separator
    return ''.join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def is_valid_token(token) -> bool:
    return isinstance(token, str) and bool(TOKEN_RE.match(token))


def parse_int(text, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Parse a whole number typed by a user, enforcing optional bounds"""
    try:
        value = int(str(text).strip())
    except (TypeError, ValueError):
        raise ValidationError('❌ لطفاً یک عدد معتبر وارد کنید.')
    if minimum is not None and value < minimum:
        raise ValidationError(f'❌ عدد باید حداقل {minimum} باشد.')
    if maximum is not None and value > maximum:
        raise ValidationError(f'❌ عدد باید حداکثر {maximum} باشد.')
    return value


def format_duration(ms: int) -> str:
    total = max(0, math.ceil(ms / 1000))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{days} روز و {hours} ساعت و {minutes} دقیقه و {seconds} ثانیه"


def format_size(size) -> str:
    if not size:
        return '—'
    size = float(size)
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024 or unit == 'GB':
            return f"{size:.0f} {unit}" if unit == 'B' else f"{size:.1f} {unit}"
        size /= 1024


def format_date(ts: Optional[int]) -> str:
    if not ts:
        return '—'
    return _utc(ts).astimezone(TIMEZONE).strftime('%Y-%m-%d %H:%M')


def normalize_channel(value: str) -> str:
    value = (value or '').strip()
    if not value:
        return ''
    if re.match(r'^-?\d+$', value):
        return value
    if value.startswith('https://t.me/'):
        value = value[len('https://t.me/'):]
    return value if value.startswith('@') else f"@{value}"
