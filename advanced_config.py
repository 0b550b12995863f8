import os

# Cache Settings
CACHE_SETTINGS = {
    "settings_max_age": 10,  # seconds
    "max_size": 1000,  # Maximum number of items in cache
}

# Rate limits: action -> (max calls, window in seconds)
RATE_LIMITS = {
    "get_by_token": (5, 60),
    "confirm_spend": (3, 60),
    "confirm_spend_click": (5, 60),
    "gift": (5, 60),
    "transfer": (3, 60),
}

# Balance transfer between users
TRANSFER_SETTINGS = {
    "min_amount": 2,
    "max_amount": 50
}

REFERRAL_SETTINGS = {
    "bonus": 1  # diamonds paid to the referrer, once per referred user
}

CHECKIN_SETTINGS = {
    "reward": 2,
    "cooldown_days": 7
}

# Diamond top-up packages (manual card-to-card payment)
DIAMOND_PACKAGES = [
    {"id": "d25", "diamonds": 25, "price_toman": 35000},
    {"id": "d15", "diamonds": 15, "price_toman": 25000},
]

TOKEN_SETTINGS = {
    "file_token_length": 18,
    "mission_id_length": 8,
    "pattern": r'^[A-Za-z0-9_-]{10,64}$'
}

LIMITS = {
    "ticket_messages": 200,
    "purchase_index": 1000,
    "lottery_history": 100,
    "page_size": 5,
    "ticket_desc_max": 2000,
    "file_name_max": 100,
    "leaderboard_size": 10,
}

TICKET_CATEGORIES = ['عمومی', 'پرداخت', 'فنی']

# Buttons that admins may switch off for regular users
TOGGLEABLE_BUTTONS = {
    "GET_BY_TOKEN": ("get_by_token", "🔑 دریافت با توکن"),
    "MISSIONS": ("missions", "📆 مأموریت‌ها"),
    "LOTTERY": ("lottery", "🎟 قرعه‌کشی"),
    "SUB:REFERRAL": ("referral", "👥 زیرمجموعه گیری"),
    "SUB:ACCOUNT": ("account", "👤 حساب کاربری"),
    "BUY_DIAMONDS": ("buy_points", "💳 خرید الماس"),
}

# Path Settings
PATH_SETTINGS = {
    "backup_dir": os.getenv("BACKUP_DIR", "backups"),
    "log_dir": "logs",
}

# Cleanup Settings
CLEANUP_SETTINGS = {
    "old_backups_days": 7,
}
