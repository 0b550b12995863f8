"""
Error taxonomy
==============

Engines raise these exceptions; entry points catch ``BotError`` and turn it
into a denial carrying ``reason`` so the presentation layer can render it.
"""

# Error codes and messages
ERROR_CODES = {
    'invalid_input': 'ورودی نامعتبر است.',
    'invalid_token': '❌ توکن نامعتبر است.',
    'not_found': '❌ مورد درخواستی یافت نشد.',
    'permission_denied': '⛔️ دسترسی محدود شده است.',
    'invalid_state': '⚠️ این درخواست دیگر معتبر نیست.',
    'insufficient_balance': '❌ موجودی کافی نیست.',
    'quota_exhausted': '❌ سقف دانلود این فایل به پایان رسیده است.',
    'daily_cap': '⛔️ سقف دانلود روزانه شما پر شده است.',
    'rate_limited': '⚠️ لطفا کمی صبر کنید و سپس مجددا تلاش کنید.',
    'service_unavailable': '🛠 سرویس موقتاً در دسترس نیست.',
    'item_disabled': '⛔️ این فایل غیرفعال است.',
    'join_required': '📣 ابتدا در کانال‌های الزامی عضو شوید.',
    'delivery_failed': '❌ ارسال فایل ناموفق بود. هزینه‌ای کسر نشد.',
    'disabled': '⛔️ این کد غیرفعال است.',
    'capacity_reached': '⛔️ ظرفیت استفاده از این کد تکمیل شده است.',
    'already_redeemed': 'ℹ️ شما قبلاً از این کد استفاده کرده‌اید.',
    'duplicate': '❌ این مورد قبلاً ثبت شده است.',
    'transport_error': '❌ ارسال پیام ناموفق بود.',
}


class BotError(Exception):
    """Base class for expected, user-facing failures"""
    reason = 'error'

    def __init__(self, message: str = None, reason: str = None):
        if reason:
            self.reason = reason
        self.message = message or ERROR_CODES.get(self.reason, '❌ خطا')
        super().__init__(self.message)


class ValidationError(BotError):
    reason = 'invalid_input'


class NotFoundError(BotError):
    reason = 'not_found'


class PermissionDeniedError(BotError):
    reason = 'permission_denied'


class StateError(BotError):
    reason = 'invalid_state'


class InsufficientResourceError(BotError):
    """Balance too low, quota exhausted or rate limit hit"""
    reason = 'insufficient_balance'

    def __init__(self, message: str = None, reason: str = None, need=None, have=None):
        super().__init__(message, reason)
        self.need = need
        self.have = have


class TransportError(BotError):
    reason = 'transport_error'
