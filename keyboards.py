from typing import List

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from advanced_config import DIAMOND_PACKAGES, TICKET_CATEGORIES, TOGGLEABLE_BUTTONS


def button(text: str, data: str) -> InlineKeyboardButton:
    return InlineKeyboardButton(text, callback_data=data)


def cancel_keyboard():
    return InlineKeyboardMarkup([[button("❌ انصراف", 'CANCEL')]])


def menu_keyboard():
    return InlineKeyboardMarkup([[button("🏠 منوی اصلی", 'MENU')]])


def main_menu(settings, is_admin: bool):
    keyboard = [
        [button("👥 زیرمجموعه گیری", 'SUB:REFERRAL'), button("👤 حساب کاربری", 'SUB:ACCOUNT')],
        [button(settings.label('gift', "🎁 کد هدیه"), 'REDEEM_GIFT'),
         button(settings.label('get_by_token', "🔑 دریافت با توکن"), 'GET_BY_TOKEN')],
        [button("🆘 پشتیبانی", 'SUPPORT')],
        [button(settings.label('lottery', "🎟 قرعه‌کشی"), 'LOTTERY'),
         button(settings.label('missions', "📆 مأموریت‌ها"), 'MISSIONS')],
        [button(settings.label('buy_points', "💳 خرید الماس"), 'BUY_DIAMONDS')],
    ]
    if is_admin:
        keyboard.append([button("🛠 پنل مدیریت", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def account_keyboard():
    return InlineKeyboardMarkup([
        [button("🔁 انتقال الماس", 'BAL:START'), button("📂 فایل‌های من", 'MYFILES:0')],
        [button("🏠 منوی اصلی", 'MENU')]
    ])


def support_keyboard():
    return InlineKeyboardMarkup([
        [button("🎫 تیکت جدید", 'TICKET:NEW'), button("📋 تیکت‌های من", 'TICKET:MY')],
        [button("✉️ پیام به پشتیبانی", 'SUPPORT:MSG')],
        [button("🏠 منوی اصلی", 'MENU')]
    ])


def join_keyboard(channels: List[str]):
    keyboard = [[InlineKeyboardButton(f"📣 {c}", url=f"https://t.me/{c.lstrip('@')}")]
                for c in channels if c.startswith('@')]
    keyboard.append([button("✅ بررسی عضویت", 'CHECK_JOIN')])
    return InlineKeyboardMarkup(keyboard)


def quote_keyboard(token: str):
    return InlineKeyboardMarkup([
        [button("✅ تایید و دریافت", f'CONFIRM_SPEND:{token}')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def transfer_confirm_keyboard():
    return InlineKeyboardMarkup([
        [button("✅ تایید انتقال", 'BAL:CONFIRM')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def packages_keyboard():
    keyboard = [[button(f"{p['diamonds']} الماس — {p['price_toman']:,} تومان", f"DPKG:{p['id']}")]
                for p in DIAMOND_PACKAGES]
    keyboard.append([button("🏠 منوی اصلی", 'MENU')])
    return InlineKeyboardMarkup(keyboard)


def ticket_categories_keyboard():
    keyboard = [[button(c, f'TKT:CAT:{i}')] for i, c in enumerate(TICKET_CATEGORIES)]
    keyboard.append([button("❌ انصراف", 'CANCEL')])
    return InlineKeyboardMarkup(keyboard)


def ticket_submit_keyboard():
    return InlineKeyboardMarkup([
        [button("✅ ثبت تیکت", 'TKT:SUBMIT')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def my_files_keyboard(items, page: int, total_pages: int):
    keyboard = [[button(f"{'🚫 ' if item.disabled else ''}{item.name[:30]}", f'DETAILS:{item.token}:{page}')]
                for item in items]
    nav = []
    if page > 0:
        nav.append(button("⬅️ قبلی", f'MYFILES:{page - 1}'))
    if page + 1 < total_pages:
        nav.append(button("بعدی ➡️", f'MYFILES:{page + 1}'))
    if nav:
        keyboard.append(nav)
    keyboard.append([button("🏠 منوی اصلی", 'MENU')])
    return InlineKeyboardMarkup(keyboard)


def file_keyboard(item, page: int, is_admin: bool):
    keyboard = [
        [button("🔗 لینک", f'LINK:{item.token}'), button("📤 ارسال", f'SEND:{item.token}')],
        [button("✏️ تغییر نام", f'RENAME:{item.token}')],
    ]
    if is_admin:
        keyboard += [
            [button("💎 هزینه", f'COST:{item.token}'), button("🔢 محدودیت", f'LIMIT:{item.token}')],
            [button(f"🗑 حذف پس از اتمام: {'روشن' if item.delete_on_limit else 'خاموش'}", f'DELAFTER:{item.token}')],
            [button("🟢 فعال‌سازی" if item.disabled else "🔴 غیرفعال", f'TOGGLE:{item.token}'),
             button("♻️ جایگزینی", f'REPLACE:{item.token}')],
            [button("🗑 حذف", f'DEL:{item.token}')],
        ]
    keyboard.append([button("⬅️ بازگشت", f'MYFILES:{page}')])
    return InlineKeyboardMarkup(keyboard)


def cost_keyboard(token: str):
    return InlineKeyboardMarkup([
        [button(str(n), f'COST_SET:{token}:{n}') for n in (0, 1, 2, 3, 5)],
        [button("✏️ مقدار دلخواه", f'COST_CUSTOM:{token}')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def limit_keyboard(token: str):
    return InlineKeyboardMarkup([
        [button("∞" if n == 0 else str(n), f'LIMIT_SET:{token}:{n}') for n in (0, 1, 5, 10, 50)],
        [button("✏️ مقدار دلخواه", f'LIMIT_CUSTOM:{token}')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def missions_keyboard(missions):
    keyboard = [[button("✅ دریافت پاداش هفتگی (هر ۷ روز)", 'WEEKLY_CHECKIN')]]
    for mission in missions:
        if mission.type == 'quiz':
            keyboard.append([button(f"🎮 {mission.title}", f'MIS:QUIZ:{mission.id}')])
        elif mission.type == 'question':
            keyboard.append([button(f"❓ {mission.title}", f'MIS:Q:{mission.id}')])
    keyboard.append([button("🏆 جدول هفته", 'LEADERBOARD')])
    keyboard.append([button("🏠 منوی اصلی", 'MENU')])
    return InlineKeyboardMarkup(keyboard)


def quiz_keyboard(mission):
    keyboard = [[button(option, f'MIS:QUIZ_ANS:{mission.id}:{i}')]
                for i, option in enumerate(mission.config.get('options') or [])]
    keyboard.append([button("❌ انصراف", 'CANCEL')])
    return InlineKeyboardMarkup(keyboard)


def lottery_keyboard(enrolled: bool):
    keyboard = [] if enrolled else [[button("🎟 ثبت‌نام در قرعه‌کشی امروز", 'LOTTERY:ENROLL')]]
    keyboard.append([button("🏠 منوی اصلی", 'MENU')])
    return InlineKeyboardMarkup(keyboard)


# Admin
def admin_panel():
    return InlineKeyboardMarkup([
        [button("📊 آمار", 'ADMIN:STATS'), button("🛠 حالت آپدیت", 'ADMIN:TOGGLE_UPDATE')],
        [button("📢 ارسال اعلان", 'ADMIN:BROADCAST'), button("⚙️ تنظیمات سرویس", 'ADMIN:SETTINGS')],
        [button("📂 مدیریت فایل‌ها", 'MYFILES:0'), button("📤 آپلود فایل", 'ADMIN:UPLOAD')],
        [button("📤 آپلود گروهی", 'ADMIN:BULK_UPLOAD'), button("📣 کانال‌های اجباری", 'ADMIN:MANAGE_JOIN')],
        [button("👑 مدیریت ادمین‌ها", 'ADMIN:MANAGE_ADMINS'), button("🎁 مدیریت گیفت‌کد", 'ADMIN:GIFTS')],
        [button("🎯 افزودن الماس", 'ADMIN:GIVEPOINTS'), button("📆 ماموریت‌ها", 'ADMIN:MISSIONS')],
        [button("🎫 تیکت‌ها", 'ADMIN:TICKETS'), button("🎟 قرعه‌کشی", 'ADMIN:LOTTERY')],
        [button("💳 مدیریت پرداخت‌ها", 'ADMIN:PAYMENTS'), button("🗄 تهیه پشتیبان", 'ADMIN:BACKUP')],
        [button("🏠 منوی اصلی", 'MENU')]
    ])


def back_to_panel():
    return InlineKeyboardMarkup([[button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')]])


def purchase_review_keyboard(purchase_id: str):
    return InlineKeyboardMarkup([
        [button("✅ تایید", f'PAYAPP:{purchase_id}'), button("❌ رد", f'PAYREJ:{purchase_id}')]
    ])


def settings_keyboard():
    return InlineKeyboardMarkup([
        [button("✏️ ویرایش پیام خوش‌آمد", 'ADMIN:SET:WELCOME'), button("🔢 تغییر سقف روزانه", 'ADMIN:SET:DAILY')],
        [button("📝 ویرایش عنوان دکمه‌ها", 'ADMIN:SET:BUTTONS')],
        [button("🚫 مدیریت دکمه‌های غیرفعال", 'ADMIN:DISABLE_BTNS')],
        [button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')]
    ])


def disabled_buttons_keyboard(settings):
    disabled = settings.get()['disabled_buttons']
    keyboard = []
    for key, (label_key, fallback) in TOGGLEABLE_BUTTONS.items():
        state = "🟢 فعال‌سازی" if disabled.get(key) else "🔴 غیرفعال"
        keyboard.append([button(f"{state} {settings.label(label_key, fallback)}", f'ADMIN:BTN_TOGGLE:{key}')])
    keyboard.append([button("⬅️ بازگشت", 'ADMIN:SETTINGS')])
    return InlineKeyboardMarkup(keyboard)


def join_admin_keyboard(channels: List[str]):
    keyboard = [[button(f"🗑 {c}", f'ADMIN:JOIN_DEL:{i}')] for i, c in enumerate(channels)]
    keyboard.append([button("➕ افزودن کانال", 'ADMIN:JOIN_ADD')])
    keyboard.append([button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def admins_keyboard(admin_ids: List[int]):
    keyboard = [[button(f"🗑 {a}", f'ADMIN:DEL_ADMIN:{a}')] for a in admin_ids]
    keyboard.append([button("➕ افزودن ادمین", 'ADMIN:ADD_ADMIN')])
    keyboard.append([button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def gifts_keyboard(gifts):
    keyboard = []
    for gift in gifts[:20]:
        keyboard.append([
            button(f"{'🟢' if gift.disabled else '🔴'} {gift.code}", f'ADMIN:GIFT_TOGGLE:{gift.code}'),
            button("🗑", f'ADMIN:GIFT_DELETE:{gift.code}')
        ])
    keyboard.append([button("➕ ایجاد کد", 'ADMIN:GIFT_CREATE')])
    keyboard.append([button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def missions_admin_keyboard(missions):
    keyboard = [
        [button("➕ ایجاد", 'ADMIN:MIS:CREATE'), button("✏️ ویرایش", 'ADMIN:MIS:EDIT')],
        [button("🧩 کوییز", 'ADMIN:MIS:CREATE:QUIZ'), button("❓ سوال", 'ADMIN:MIS:CREATE:QUESTION'),
         button("👥 دعوت", 'ADMIN:MIS:CREATE:INVITE')],
    ]
    for mission in missions:
        keyboard.append([
            button(f"{'🔴 غیرفعال' if mission.enabled else '🟢 فعال‌سازی'} {mission.id}", f'ADMIN:MIS:TOGGLE:{mission.id}'),
            button(f"🗑 {mission.id}", f'ADMIN:MIS:DEL:{mission.id}')
        ])
    keyboard.append([button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def period_keyboard(prefix: str):
    return InlineKeyboardMarkup([
        [button("یکبار", f'{prefix}:once'), button("روزانه", f'{prefix}:daily'), button("هفتگی", f'{prefix}:weekly')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def lottery_admin_keyboard(config):
    return InlineKeyboardMarkup([
        [button("🔴 غیرفعال‌سازی" if config.enabled else "🟢 فعال‌سازی", 'ADMIN:LOT:TOGGLE')],
        [button("✏️ تنظیم مقادیر", 'ADMIN:LOT:CONFIG')],
        [button("▶️ اجرای قرعه‌کشی امروز", 'ADMIN:LOT:RUN_NOW')],
        [button("📜 تاریخچه", 'ADMIN:LOT:HISTORY')],
        [button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')]
    ])


def tickets_admin_keyboard(tickets):
    keyboard = [[button(f"{'🟢' if t.status == 'open' else '⚪️'} {t.id} | {t.subject[:20]}", f'ATK:VIEW:{t.id}')]
                for t in tickets]
    keyboard.append([button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
    return InlineKeyboardMarkup(keyboard)


def ticket_admin_keyboard(ticket):
    return InlineKeyboardMarkup([
        [button("✉️ پاسخ", f'ATK:REPLY:{ticket.id}'),
         button("🔒 بستن" if ticket.status == 'open' else "🔓 بازکردن", f'ATK:TOGGLE:{ticket.id}')],
        [button("⛔️ مسدودسازی کاربر", f'ATK:BLK:{ticket.id}'), button("🗑 حذف", f'ATK:DEL:{ticket.id}')],
        [button("⬅️ بازگشت", 'ADMIN:TICKETS')]
    ])


def bulk_keyboard():
    return InlineKeyboardMarkup([
        [button("✅ پایان آپلود", 'ADMIN:BULK_FINISH')],
        [button("❌ انصراف", 'CANCEL')]
    ])


def bulk_finish_keyboard():
    return InlineKeyboardMarkup([
        [button("💎 تنظیم هزینه و محدودیت گروهی", 'ADMIN:BULK_META')],
        [button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')]
    ])
