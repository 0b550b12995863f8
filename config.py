import os
from dotenv import load_dotenv
import pytz

load_dotenv()

# Bot Configuration
BOT_TOKEN = os.getenv("BOT_TOKEN", "")
ADMIN_IDS = [int(x) for x in os.getenv("ADMIN_IDS", "").replace(' ', '').split(',') if x.strip().lstrip('-').isdigit()]
MAIN_ADMIN_ID = ADMIN_IDS[0] if ADMIN_IDS else None
MAIN_ADMIN_USERNAME = os.getenv("MAIN_ADMIN_USERNAME", "")
JOIN_CHAT = os.getenv("JOIN_CHAT", "")

# Webhook mode is used when WEBHOOK_URL is set, polling otherwise
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_HOST = os.getenv("WEBHOOK_HOST", "0.0.0.0")
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "8080"))
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")

# Run the daily lottery draw and backup inside the bot process (disable when maintenance.py runs from cron)
RUN_DAILY_TASKS = os.getenv("RUN_DAILY_TASKS", "true").lower() == "true"

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///file_bot.db")

# Payment Settings
PAYMENT_METHODS = {
    "card": {
        "number": os.getenv("BANK_CARD_NUMBER", "6219-8619-4308-4037"),
        "name": os.getenv("BANK_CARD_NAME", "")
    }
}

# Messages
MESSAGES = {
    "welcome": "👋 به ربات خوش آمدید!\nاز منوی زیر یکی از گزینه‌ها را انتخاب کنید.",
    "main_menu": "🏠 منوی اصلی",
    "cancelled": "❎ عملیات لغو شد.",
    "blocked": "⛔️ دسترسی شما به ربات مسدود شده است.",
    "generic_error": "❌ متأسفانه خطایی رخ داده است. لطفاً مجدداً تلاش کنید.",
    "permission_denied": "⛔️ دسترسی محدود شده است.",
    "join_required": "📣 برای استفاده از ربات، ابتدا در کانال‌های زیر عضو شوید و سپس روی «بررسی عضویت» بزنید.",
    "join_ok": "✅ عضویت شما تایید شد.",
    "join_failed": "❌ هنوز عضو همه کانال‌ها نیستید.",
    "button_disabled": "⛔️ این بخش موقتاً غیرفعال است.",
    "invalid_number": "❌ لطفاً یک عدد معتبر وارد کنید.",
    "service_unavailable": "🛠 ربات در حال به‌روزرسانی است. لطفاً بعداً مراجعه کنید.",
    "file_delivered": "✅ فایل ارسال شد.",
    "quote": "💎 دریافت این فایل {cost} الماس هزینه دارد.\nموجودی شما: {balance} الماس\nآیا تایید می‌کنید؟",
    "quote_short": "⚠️ موجودی شما برای این فایل کافی نیست. با دعوت دوستان الماس جمع کنید.",
    "insufficient_balance": "❌ موجودی کافی نیست. نیاز: {need} الماس، موجودی: {have} الماس",
    "transfer_done": "✅ {amount} الماس به کاربر {to} منتقل شد.",
    "transfer_received": "💎 {amount} الماس از طرف کاربر {frm} به حساب شما منتقل شد.",
    "gift_redeemed": "🎁 کد هدیه با موفقیت فعال شد و {amount} الماس به حساب شما اضافه شد.",
    "referral_credited": "🎉 یک کاربر با لینک شما وارد شد و {bonus} الماس دریافت کردید.",
    "checkin_ok": "✅ پاداش هفتگی دریافت شد: {reward} الماس",
    "checkin_wait": "⏳ پاداش هفتگی را قبلاً دریافت کرده‌اید.\nزمان باقیمانده: {remaining}",
    "payment_info": "💳 اطلاعات پرداخت:\nبسته: {diamonds} الماس\nمبلغ: {price:,} تومان\nشماره کارت: `{card}`\nبه نام: {name}\n\nشناسه خرید: {id}\nپس از واریز، تصویر رسید را ارسال کنید.",
    "receipt_received": "✅ رسید شما دریافت شد و پس از بررسی، الماس به حساب شما اضافه می‌شود.",
    "payment_approved": "✅ خرید شما (شناسه {id}) تایید شد و {diamonds} الماس به حساب شما اضافه شد.",
    "payment_rejected": "❌ خرید شما (شناسه {id}) رد شد. در صورت نیاز با پشتیبانی تماس بگیرید.",
    "lottery_enrolled": "🎟 در قرعه‌کشی امروز ثبت‌نام شدید.",
    "lottery_already": "ℹ️ شما قبلاً در قرعه‌کشی امروز ثبت‌نام کرده‌اید.",
    "lottery_disabled": "ℹ️ قرعه‌کشی در حال حاضر فعال نیست.",
    "lottery_won": "🎉 تبریک! شما برنده قرعه‌کشی شدید و {reward} الماس دریافت کردید.",
    "mission_done": "✅ مأموریت «{title}» انجام شد و {reward} الماس دریافت کردید.",
    "mission_wrong": "❌ پاسخ نادرست بود. این مأموریت برای این دوره بسته شد.",
    "mission_already": "ℹ️ این مأموریت را در این دوره انجام داده‌اید.",
}

# Timezone used for human readable dates only; period keys are UTC
TIMEZONE = pytz.timezone('Asia/Tehran')
