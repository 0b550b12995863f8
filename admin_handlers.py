"""Admin panel handlers, mixed into ``Conversation``"""
import json
import logging

import keyboards
from advanced_config import TOGGLEABLE_BUTTONS
from config import MESSAGES
from errors import ERROR_CODES, NotFoundError, StateError, ValidationError
from maintenance import backup_filename, create_backup
from models import ContentType, MissionType
from security import admin_only
from utils import day_key, format_date, format_size, is_valid_token, normalize_channel, parse_int

logger = logging.getLogger(__name__)

MEDIA_TYPES = {t.value for t in ContentType} - {ContentType.TEXT.value}


class AdminHandlersMixin:
    def admin_routes(self):
        exact = {
            'ADMIN:PANEL': self.show_admin_panel,
            'ADMIN:STATS': self.show_stats,
            'ADMIN:STATS:DETAILS': self.show_stats_details,
            'ADMIN:TOGGLE_UPDATE': self.toggle_update_mode,
            'ADMIN:BROADCAST': self.start_broadcast,
            'ADMIN:SETTINGS': self.show_settings,
            'ADMIN:SET:WELCOME': self.start_set_welcome,
            'ADMIN:SET:DAILY': self.start_set_daily,
            'ADMIN:SET:BUTTONS': self.start_set_buttons,
            'ADMIN:DISABLE_BTNS': self.show_disabled_buttons,
            'ADMIN:MANAGE_JOIN': self.manage_join,
            'ADMIN:JOIN_ADD': self.start_join_add,
            'ADMIN:MANAGE_ADMINS': self.manage_admins,
            'ADMIN:ADD_ADMIN': self.start_add_admin,
            'ADMIN:GIVEPOINTS': self.start_give_balance,
            'ADMIN:UPLOAD': self.start_upload,
            'ADMIN:BULK_UPLOAD': self.start_bulk_upload,
            'ADMIN:BULK_FINISH': self.finish_bulk_upload,
            'ADMIN:BULK_META': self.start_bulk_meta,
            'ADMIN:PAYMENTS': self.show_payments,
            'ADMIN:TICKETS': self.show_tickets,
            'ADMIN:GIFTS': self.show_gifts,
            'ADMIN:GIFT_CREATE': self.start_gift_create,
            'ADMIN:MISSIONS': self.show_missions_admin,
            'ADMIN:MIS:CREATE': self.start_mission_create,
            'ADMIN:MIS:CREATE:QUIZ': self.start_quiz_create,
            'ADMIN:MIS:CREATE:QUESTION': self.start_question_create,
            'ADMIN:MIS:CREATE:INVITE': self.start_invite_create,
            'ADMIN:MIS:EDIT': self.start_mission_edit,
            'ADMIN:LOTTERY': self.show_lottery_admin,
            'ADMIN:LOT:TOGGLE': self.toggle_lottery,
            'ADMIN:LOT:CONFIG': self.start_lottery_config,
            'ADMIN:LOT:RUN_NOW': self.run_lottery_now,
            'ADMIN:LOT:HISTORY': self.show_lottery_history,
            'ADMIN:BACKUP': self.send_backup,
        }
        prefix = {
            'ADMIN:BTN_TOGGLE:': self.toggle_button,
            'ADMIN:JOIN_DEL:': self.remove_join_channel,
            'ADMIN:DEL_ADMIN:': self.remove_admin,
            'ADMIN:GIFT_TOGGLE:': self.toggle_gift,
            'ADMIN:GIFT_DELETE:': self.delete_gift,
            'ADMIN:MIS:PERIOD:': self.choose_mission_period,
            'ADMIN:MIS:TOGGLE:': self.toggle_mission,
            'ADMIN:MIS:DEL:': self.delete_mission,
            'REPLACE:': self.start_replace,
            'COST:': self.show_cost_options,
            'COST_SET:': self.set_cost,
            'COST_CUSTOM:': self.start_custom_cost,
            'LIMIT:': self.show_limit_options,
            'LIMIT_SET:': self.set_limit,
            'LIMIT_CUSTOM:': self.start_custom_limit,
            'DELAFTER:': self.toggle_delete_after,
            'TOGGLE:': self.toggle_file,
            'DEL:': self.delete_file,
            'PAY:VIEW:': self.view_payment,
            'PAYAPP:': self.approve_payment,
            'PAYREJ:': self.reject_payment,
            'SUPREPLY:': self.start_support_reply,
            'ATK:VIEW:': self.view_ticket_admin,
            'ATK:REPLY:': self.start_admin_ticket_reply,
            'ATK:TOGGLE:': self.toggle_ticket,
            'ATK:BLK:': self.block_ticket_user,
            'ATK:DEL:': self.delete_ticket,
        }
        pending = {
            'upload': self.on_upload_input,
            'bulk_upload': self.on_bulk_upload_input,
            'bulk_meta': self.on_bulk_meta_input,
            'replace': self.on_replace_input,
            'set_cost': self.on_cost_input,
            'set_limit': self.on_limit_input,
            'broadcast': self.on_broadcast_input,
            'join_add': self.on_join_add_input,
            'add_admin': self.on_add_admin_input,
            'give_balance': self.on_give_balance_input,
            'set_welcome': self.on_welcome_input,
            'set_daily_limit': self.on_daily_limit_input,
            'set_buttons': self.on_buttons_input,
            'mission_create': self.on_mission_input,
            'mission_quiz': self.on_mission_input,
            'mission_question': self.on_mission_input,
            'mission_invite': self.on_mission_input,
            'mission_edit': self.on_mission_edit_input,
            'gift_create': self.on_gift_create_input,
            'lottery_config': self.on_lottery_config_input,
            'admin_ticket_reply': self.on_admin_ticket_reply_input,
            'support_reply': self.on_support_reply_input,
        }
        commands = {
            '/givediamonds': self.cmd_give_diamonds,
            '/setcost': self.cmd_set_cost,
            '/disable': self.cmd_disable,
            '/enable': self.cmd_enable,
            '/broadcast': self.start_broadcast,
        }
        return exact, prefix, pending, commands

    @staticmethod
    def _args(req, count: int):
        parts = req.text.split()[1:]
        if len(parts) < count:
            raise ValidationError('❌ پارامترهای دستور ناقص است.')
        return parts

    # Panel and statistics
    @admin_only
    async def show_admin_panel(self, req):
        """Show admin panel"""
        self.core.sessions.clear(req.user_id)
        await self.reply(req, "🛠 پنل مدیریت\nلطفا یک گزینه را انتخاب کنید:", keyboards.admin_panel())

    @admin_only
    async def show_stats(self, req):
        """Show bot statistics"""
        core = self.core
        user_ids = core.ledger.user_ids()
        today = day_key(core.clock())
        text = (
            f"📊 آمار ربات:\n\n"
            f"👥 کاربران: {len(user_ids)}\n"
            f"👑 ادمین‌ها: {len(req.admins)}\n"
            f"🎟 شرکت‌کنندگان قرعه‌کشی امروز: {len(core.lottery.pool(today))}\n"
            f"🛠 حالت آپدیت: {'روشن' if core.settings.is_update_mode() else 'خاموش'}\n"
            f"⏱ آخرین درخواست: {format_date(core.db.get('bot:last_webhook'))}"
        )
        markup = keyboards.InlineKeyboardMarkup([
            [keyboards.button("📈 جزئیات", 'ADMIN:STATS:DETAILS')],
            [keyboards.button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')]
        ])
        await self.reply(req, text, markup)

    @admin_only
    async def show_stats_details(self, req):
        core = self.core
        users = [u for u in (core.ledger.get_user(uid) for uid in core.ledger.user_ids()) if u]
        files = sum(len(core.files.list_tokens(u.id)) for u in users)
        purchases = core.purchases.recent(limit=1000)
        approved = [p for p in purchases if p.status == 'approved']
        text = (
            f"📈 جزئیات:\n\n"
            f"💎 مجموع الماس کاربران: {sum(u.diamonds for u in users)}\n"
            f"📂 فایل‌ها: {files}\n"
            f"💳 خریدهای تایید شده: {len(approved)} ({sum(p.price_toman for p in approved):,} تومان)\n"
            f"⏳ خریدهای در انتظار بررسی: {sum(1 for p in purchases if p.status == 'pending_review')}\n"
            f"🎫 تیکت‌های باز: {sum(1 for t in core.tickets.list_all(limit=1000) if t.status == 'open')}"
        )
        await self.reply(req, text, keyboards.back_to_panel())

    @admin_only
    async def toggle_update_mode(self, req):
        enabled = self.core.settings.toggle_update_mode()
        logger.info(f"Update mode set to {enabled} by {req.user_id}")
        await self.reply(req, f"🛠 حالت آپدیت {'روشن' if enabled else 'خاموش'} شد.", keyboards.back_to_panel())

    # Broadcast
    @admin_only
    async def start_broadcast(self, req):
        """Send broadcast message to users"""
        self.core.sessions.begin(req.user_id, 'broadcast')
        await self.reply(req, "📢 ارسال اعلان\n\nلطفا متن پیام خود را وارد کنید:", keyboards.cancel_keyboard())

    async def on_broadcast_input(self, req):
        """Handle broadcast message text and send it to every user"""
        if not req.text:
            raise ValidationError('❌ متن پیام را ارسال کنید.')
        self.core.sessions.clear(req.user_id)
        success, failed = 0, 0
        for user_id in self.core.ledger.user_ids():
            if await self.transport.send_message(user_id, req.text):
                success += 1
            else:
                failed += 1
        logger.info(f"Broadcast by {req.user_id}: {success} sent, {failed} failed")
        await self.reply(req, f"📢 پیام همگانی ارسال شد:\n✅ موفق: {success}\n❌ ناموفق: {failed}",
                         keyboards.back_to_panel())

    # Settings
    @admin_only
    async def show_settings(self, req):
        settings = self.core.settings.get()
        text = (
            f"⚙️ تنظیمات سرویس\n\n"
            f"🔢 سقف دانلود روزانه: {settings['daily_limit'] or 'نامحدود'}\n"
            f"✏️ پیام خوش‌آمد: {settings['welcome_message'] or 'پیش‌فرض'}"
        )
        await self.reply(req, text, keyboards.settings_keyboard())

    @admin_only
    async def start_set_welcome(self, req):
        self.core.sessions.begin(req.user_id, 'set_welcome')
        await self.reply(req, "✏️ متن جدید پیام خوش‌آمد را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_welcome_input(self, req):
        if not req.text:
            raise ValidationError('❌ متن نمی‌تواند خالی باشد.')
        self.core.settings.update(welcome_message=req.text)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, "✅ پیام خوش‌آمد ذخیره شد.", keyboards.settings_keyboard())

    @admin_only
    async def start_set_daily(self, req):
        self.core.sessions.begin(req.user_id, 'set_daily_limit')
        await self.reply(req, "🔢 سقف دانلود روزانه را ارسال کنید (0 = نامحدود):", keyboards.cancel_keyboard())

    async def on_daily_limit_input(self, req):
        limit = parse_int(req.text, minimum=0)
        self.core.settings.update(daily_limit=limit)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ سقف روزانه روی {limit} تنظیم شد.", keyboards.settings_keyboard())

    @admin_only
    async def start_set_buttons(self, req):
        labels = json.dumps(self.core.settings.get()['button_labels'], ensure_ascii=False)
        self.core.sessions.begin(req.user_id, 'set_buttons')
        await self.reply(req, f"📝 عنوان دکمه‌ها را به صورت JSON ارسال کنید.\nمقدار فعلی:\n{labels}",
                         keyboards.cancel_keyboard())

    async def on_buttons_input(self, req):
        try:
            labels = json.loads(req.text)
        except ValueError:
            raise ValidationError('❌ JSON نامعتبر است.')
        if not isinstance(labels, dict) or not all(isinstance(v, str) for v in labels.values()):
            raise ValidationError('❌ JSON باید یک شیء با مقادیر متنی باشد.')
        self.core.settings.update(button_labels=labels)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, "✅ عنوان دکمه‌ها ذخیره شد.", keyboards.settings_keyboard())

    @admin_only
    async def show_disabled_buttons(self, req):
        await self.reply(req, "🚫 دکمه‌های قابل غیرفعال‌سازی:",
                         keyboards.disabled_buttons_keyboard(self.core.settings))

    @admin_only
    async def toggle_button(self, req, key: str):
        if key not in TOGGLEABLE_BUTTONS:
            raise ValidationError()
        self.core.settings.toggle_button(key)
        await self.show_disabled_buttons(req)

    # Required channels
    @admin_only
    async def manage_join(self, req):
        channels = self.core.security.required_channels()
        text = "📣 کانال‌های اجباری:\n" + ('\n'.join(channels) if channels else 'هیچ کانالی تنظیم نشده است.')
        await self.reply(req, text, keyboards.join_admin_keyboard(channels))

    @admin_only
    async def start_join_add(self, req):
        self.core.sessions.begin(req.user_id, 'join_add')
        await self.reply(req, "➕ یوزرنیم یا آی‌دی عددی کانال را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_join_add_input(self, req):
        if not normalize_channel(req.text):
            raise ValidationError('❌ کانال نامعتبر است.')
        self.core.security.add_channel(req.text)
        self.core.sessions.clear(req.user_id)
        await self.manage_join(req)

    @admin_only
    async def remove_join_channel(self, req, arg: str):
        self.core.security.remove_channel(parse_int(arg, minimum=0))
        await self.manage_join(req)

    # Admin list
    @admin_only
    async def manage_admins(self, req):
        await self.reply(req, "👑 مدیریت ادمین‌ها:", keyboards.admins_keyboard(self.core.ledger.admin_ids()))

    @admin_only
    async def start_add_admin(self, req):
        self.core.sessions.begin(req.user_id, 'add_admin')
        await self.reply(req, "➕ آی‌دی عددی ادمین جدید را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_add_admin_input(self, req):
        admin_ids = self.core.ledger.add_admin(parse_int(req.text, minimum=1))
        self.core.sessions.clear(req.user_id)
        await self.reply(req, "✅ ادمین اضافه شد.", keyboards.admins_keyboard(admin_ids))

    @admin_only
    async def remove_admin(self, req, arg: str):
        admin_ids = self.core.ledger.remove_admin(parse_int(arg))
        await self.reply(req, "✅ ادمین حذف شد.", keyboards.admins_keyboard(admin_ids))

    # Balance
    @admin_only
    async def start_give_balance(self, req):
        self.core.sessions.begin(req.user_id, 'give_balance', step='target')
        await self.reply(req, "🎯 آی‌دی عددی کاربر را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_give_balance_input(self, req):
        if req.pending.step == 'target':
            target = parse_int(req.text, minimum=1)
            self.core.sessions.advance(req.user_id, req.session, 'amount', target=target)
            await self.reply(req, "💎 مقدار الماس را ارسال کنید (منفی برای کسر):", keyboards.cancel_keyboard())
            return
        amount = parse_int(req.text)
        if amount == 0:
            raise ValidationError('❌ مقدار نمی‌تواند صفر باشد.')
        target = int(req.pending.draft['target'])
        self.core.sessions.clear(req.user_id)
        await self._give_balance(req, target, amount)

    async def _give_balance(self, req, target: int, amount: int):
        result = await self.core.admin_give_balance(req.user_id, target, amount)
        if result.ok:
            await self.reply(req, f"✅ موجودی کاربر {target}: {result.value} الماس", keyboards.back_to_panel())
        else:
            await self.reply(req, result.message, keyboards.back_to_panel())

    @admin_only
    async def cmd_give_diamonds(self, req):
        target, amount = self._args(req, 2)[:2]
        await self._give_balance(req, parse_int(target, minimum=1), parse_int(amount))

    # Uploads
    def _payload(self, req):
        media = req.event.media
        if media and media.type in MEDIA_TYPES:
            return {'content_type': media.type, 'file_id': media.file_id, 'name': media.name, 'size': media.size}
        if req.text:
            return {'content_type': ContentType.TEXT.value, 'text': req.text, 'name': req.text.splitlines()[0][:30]}
        raise ValidationError('❌ فایل یا متن پشتیبانی نمی‌شود.')

    async def _report_upload(self, req, item):
        link = await self.share_link(item.token)
        await self.reply(
            req,
            f"✅ فایل ذخیره شد.\n📄 {item.name} ({format_size(item.size)})\nتوکن: `{item.token}`\n🔗 {link}",
            keyboards.file_keyboard(item, 0, True),
            parse_mode='Markdown'
        )

    @admin_only
    async def start_upload(self, req):
        self.core.sessions.begin(req.user_id, 'upload')
        await self.reply(req, "📤 فایل یا متن مورد نظر را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_upload_input(self, req):
        item = self.core.files.create(req.user_id, **self._payload(req))
        self.core.sessions.clear(req.user_id)
        await self._report_upload(req, item)

    @admin_only
    async def quick_upload(self, req):
        media = req.event.media
        if media.type not in MEDIA_TYPES:
            await self.show_menu(req)
            return
        item = self.core.files.create(req.user_id, media.type, file_id=media.file_id, name=media.name,
                                      size=media.size)
        await self._report_upload(req, item)

    @admin_only
    async def start_bulk_upload(self, req):
        self.core.sessions.begin(req.user_id, 'bulk_upload')
        await self.reply(req, "📤 فایل‌ها را یکی‌یکی ارسال کنید و در پایان «پایان آپلود» را بزنید.",
                         keyboards.bulk_keyboard())

    async def on_bulk_upload_input(self, req):
        item = self.core.files.create(req.user_id, **self._payload(req))
        session = req.session
        session.tokens.append(item.token)
        self.core.sessions.save(req.user_id, session)
        await self.reply(req, f"✅ {len(session.tokens)}. {item.name} — `{item.token}`", keyboards.bulk_keyboard(),
                         parse_mode='Markdown')

    @admin_only
    async def finish_bulk_upload(self, req):
        pending = req.pending
        tokens = list(req.session.tokens)
        if not pending or pending.kind != 'bulk_upload':
            raise StateError()
        if not tokens:
            self.core.sessions.clear(req.user_id)
            await self.reply(req, "ℹ️ فایلی آپلود نشد.", keyboards.back_to_panel())
            return
        self.core.sessions.begin(req.user_id, 'bulk_upload', step='done', tokens=tokens)
        links = [await self.share_link(token) for token in tokens]
        await self.reply(req, f"✅ {len(tokens)} فایل ذخیره شد:\n" + '\n'.join(links), keyboards.bulk_finish_keyboard())

    @admin_only
    async def start_bulk_meta(self, req):
        tokens = list(req.session.tokens)
        if not tokens:
            raise StateError()
        self.core.sessions.begin(req.user_id, 'bulk_meta', tokens=tokens)
        await self.reply(req, "💎 هزینه و سقف دانلود را با فاصله ارسال کنید (مثال: 2 10):", keyboards.cancel_keyboard())

    async def on_bulk_meta_input(self, req):
        parts = req.text.split()
        if len(parts) != 2:
            raise ValidationError('❌ دو عدد با فاصله ارسال کنید (مثال: 2 10).')
        cost, limit = parse_int(parts[0], minimum=0), parse_int(parts[1], minimum=0)
        updated = self.core.files.apply_meta(req.session.tokens, cost, limit)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ تنظیمات روی {updated} فایل اعمال شد.", keyboards.back_to_panel())

    @admin_only
    async def start_replace(self, req, token: str):
        self.core.files.require(token)
        self.core.sessions.begin(req.user_id, 'replace', target=token)
        await self.reply(req, "♻️ محتوای جدید را ارسال کنید. توکن و لینک تغییر نمی‌کند.", keyboards.cancel_keyboard())

    async def on_replace_input(self, req):
        payload = self._payload(req)
        item = self.core.files.replace_content(req.pending.target, **payload)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ محتوای فایل {item.token} جایگزین شد.")

    # Per-file settings
    @admin_only
    async def show_cost_options(self, req, token: str):
        item = self.core.files.require(token)
        await self.reply(req, f"💎 هزینه فعلی: {item.cost_points}\nهزینه جدید را انتخاب کنید:",
                         keyboards.cost_keyboard(token))

    @admin_only
    async def set_cost(self, req, arg: str):
        token, _, value = arg.rpartition(':')
        item = self.core.files.set_cost(token, parse_int(value, minimum=0))
        await self.reply(req, f"✅ هزینه فایل روی {item.cost_points} الماس تنظیم شد.")

    @admin_only
    async def start_custom_cost(self, req, token: str):
        self.core.files.require(token)
        self.core.sessions.begin(req.user_id, 'set_cost', target=token)
        await self.reply(req, "💎 هزینه را به عدد ارسال کنید:", keyboards.cancel_keyboard())

    async def on_cost_input(self, req):
        item = self.core.files.set_cost(req.pending.target, parse_int(req.text, minimum=0))
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ هزینه فایل روی {item.cost_points} الماس تنظیم شد.")

    @admin_only
    async def show_limit_options(self, req, token: str):
        item = self.core.files.require(token)
        await self.reply(req, f"🔢 سقف فعلی: {item.max_downloads or '∞'}\nسقف جدید را انتخاب کنید:",
                         keyboards.limit_keyboard(token))

    @admin_only
    async def set_limit(self, req, arg: str):
        token, _, value = arg.rpartition(':')
        item = self.core.files.set_limit(token, parse_int(value, minimum=0))
        await self.reply(req, f"✅ سقف دانلود روی {item.max_downloads or '∞'} تنظیم شد.")

    @admin_only
    async def start_custom_limit(self, req, token: str):
        self.core.files.require(token)
        self.core.sessions.begin(req.user_id, 'set_limit', target=token)
        await self.reply(req, "🔢 سقف دانلود را به عدد ارسال کنید (0 = نامحدود):", keyboards.cancel_keyboard())

    async def on_limit_input(self, req):
        item = self.core.files.set_limit(req.pending.target, parse_int(req.text, minimum=0))
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ سقف دانلود روی {item.max_downloads or '∞'} تنظیم شد.")

    @admin_only
    async def toggle_delete_after(self, req, token: str):
        item = self.core.files.toggle_delete_on_limit(token)
        await self.reply(req, f"🗑 حذف پس از اتمام: {'روشن' if item.delete_on_limit else 'خاموش'}",
                         keyboards.file_keyboard(item, 0, True))

    @admin_only
    async def toggle_file(self, req, token: str):
        result = await self.core.admin_toggle_file(req.user_id, token)
        if not result.ok:
            await self.reply(req, result.message)
            return
        item = result.value
        await self.reply(req, f"{'🔴 فایل غیرفعال شد.' if item.disabled else '🟢 فایل فعال شد.'}",
                         keyboards.file_keyboard(item, 0, True))

    @admin_only
    async def delete_file(self, req, token: str):
        if not self.core.files.delete(token):
            raise NotFoundError('❌ فایل یافت نشد.')
        await self.reply(req, "🗑 فایل حذف شد.", keyboards.back_to_panel())

    @admin_only
    async def cmd_set_cost(self, req):
        token, value = self._args(req, 2)[:2]
        item = self.core.files.set_cost(token, parse_int(value, minimum=0))
        await self.reply(req, f"✅ هزینه {item.token} روی {item.cost_points} الماس تنظیم شد.")

    async def _set_disabled(self, req, disabled: bool):
        token = self._args(req, 1)[0]
        if not is_valid_token(token):
            raise ValidationError(ERROR_CODES['invalid_token'])
        item = self.core.files.set_disabled(token, disabled)
        await self.reply(req, f"{'🔴' if item.disabled else '🟢'} {item.token}")

    @admin_only
    async def cmd_disable(self, req):
        await self._set_disabled(req, True)

    @admin_only
    async def cmd_enable(self, req):
        await self._set_disabled(req, False)

    # Payments
    @admin_only
    async def show_payments(self, req):
        purchases = self.core.purchases.recent(limit=20)
        if not purchases:
            await self.reply(req, "💳 خریدی ثبت نشده است.", keyboards.back_to_panel())
            return
        icons = {'awaiting_receipt': '⌛️', 'pending_review': '🟡', 'approved': '✅', 'rejected': '❌'}
        rows = [[keyboards.button(f"{icons.get(p.status, '')} {p.id} | {p.user_id} | {p.diamonds}💎", f'PAY:VIEW:{p.id}')]
                for p in purchases]
        rows.append([keyboards.button("⬅️ بازگشت به پنل", 'ADMIN:PANEL')])
        await self.reply(req, "💳 آخرین خریدها:", keyboards.InlineKeyboardMarkup(rows))

    @admin_only
    async def view_payment(self, req, purchase_id: str):
        purchase = self.core.purchases.require(purchase_id)
        text = (
            f"💳 خرید {purchase.id}\n"
            f"کاربر: {purchase.user_id}\n"
            f"بسته: {purchase.diamonds} الماس — {purchase.price_toman:,} تومان\n"
            f"وضعیت: {purchase.status}\n"
            f"تاریخ: {format_date(purchase.created_at)}"
        )
        markup = keyboards.purchase_review_keyboard(purchase.id) if purchase.status == 'pending_review' else None
        if purchase.receipt_file_id:
            content_type = 'photo' if purchase.receipt_is_photo else 'document'
            await self.transport.send_content(req.chat_id, content_type, file_id=purchase.receipt_file_id,
                                              caption=text, reply_markup=markup)
        else:
            await self.reply(req, text, markup)

    @admin_only
    async def approve_payment(self, req, purchase_id: str):
        purchase = self.core.purchases.approve(purchase_id, req.user_id)
        await self.transport.send_message(purchase.user_id, MESSAGES['payment_approved'].format(
            id=purchase.id, diamonds=purchase.diamonds))
        await self.reply(req, f"✅ خرید {purchase.id} تایید شد.")

    @admin_only
    async def reject_payment(self, req, purchase_id: str):
        purchase = self.core.purchases.reject(purchase_id, req.user_id)
        await self.transport.send_message(purchase.user_id, MESSAGES['payment_rejected'].format(id=purchase.id))
        await self.reply(req, f"❌ خرید {purchase.id} رد شد.")

    # Support and tickets
    @admin_only
    async def start_support_reply(self, req, user_id: str):
        self.core.sessions.begin(req.user_id, 'support_reply', target=parse_int(user_id))
        await self.reply(req, "✉️ پاسخ خود را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_support_reply_input(self, req):
        if not req.text:
            raise ValidationError('❌ پاسخ را به صورت متن ارسال کنید.')
        self.core.sessions.clear(req.user_id)
        sent = await self.transport.send_message(int(req.pending.target), f"📩 پاسخ پشتیبانی:\n\n{req.text}")
        await self.reply(req, "✅ پاسخ ارسال شد." if sent else "❌ ارسال پاسخ ناموفق بود.")

    @admin_only
    async def show_tickets(self, req):
        tickets = self.core.tickets.list_all()
        await self.reply(req, "🎫 تیکت‌ها:" if tickets else "🎫 تیکتی وجود ندارد.",
                         keyboards.tickets_admin_keyboard(tickets))

    @admin_only
    async def view_ticket_admin(self, req, ticket_id: str):
        ticket = self.core.tickets.require(ticket_id)
        lines = [f"{'👤' if m['from'] == 'user' else '🛠'} {m['text']}" for m in self.core.tickets.messages(ticket_id, 10)]
        text = (
            f"🎫 تیکت {ticket.id} ({ticket.status})\n"
            f"کاربر: {ticket.user_id} {('@' + ticket.username) if ticket.username else ''}\n"
            f"دسته: {ticket.category}\n\n" + '\n'.join(lines)
        )
        await self.reply(req, text, keyboards.ticket_admin_keyboard(ticket))

    @admin_only
    async def start_admin_ticket_reply(self, req, ticket_id: str):
        self.core.tickets.require(ticket_id)
        self.core.sessions.begin(req.user_id, 'admin_ticket_reply', target=ticket_id)
        await self.reply(req, "✉️ پاسخ تیکت را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_admin_ticket_reply_input(self, req):
        if not req.text:
            raise ValidationError('❌ پاسخ را به صورت متن ارسال کنید.')
        ticket = self.core.tickets.require(req.pending.target)
        self.core.sessions.clear(req.user_id)
        sent = await self.transport.send_message(ticket.user_id, f"🛠 پاسخ تیکت {ticket.id}:\n\n{req.text}")
        if not sent:
            await self.reply(req, "❌ ارسال پاسخ ناموفق بود و در تیکت ثبت نشد.")
            return
        self.core.tickets.append_message(ticket.id, 'admin', req.user_id, req.text)
        await self.reply(req, "✅ پاسخ ارسال و ثبت شد.", keyboards.ticket_admin_keyboard(ticket))

    @admin_only
    async def toggle_ticket(self, req, ticket_id: str):
        ticket = self.core.tickets.toggle_status(ticket_id)
        await self.reply(req, f"🎫 وضعیت تیکت: {ticket.status}", keyboards.ticket_admin_keyboard(ticket))

    @admin_only
    async def block_ticket_user(self, req, ticket_id: str):
        ticket = self.core.tickets.require(ticket_id)
        if ticket.user_id in req.admins:
            raise ValidationError('❌ امکان مسدودسازی ادمین وجود ندارد.')
        self.core.security.block(ticket.user_id, by=req.user_id)
        await self.reply(req, f"⛔️ کاربر {ticket.user_id} مسدود شد.", keyboards.ticket_admin_keyboard(ticket))

    @admin_only
    async def delete_ticket(self, req, ticket_id: str):
        self.core.tickets.delete(ticket_id)
        await self.reply(req, "🗑 تیکت حذف شد.", keyboards.back_to_panel())

    # Gift codes
    @admin_only
    async def show_gifts(self, req):
        gifts = self.core.gifts.list()
        lines = [f"{'⛔️' if g.disabled else '✅'} {g.code}: {g.amount} الماس ({g.used}/{g.max_uses or '∞'})"
                 for g in gifts]
        await self.reply(req, "🎁 کدهای هدیه:\n" + ('\n'.join(lines) or '—'), keyboards.gifts_keyboard(gifts))

    @admin_only
    async def start_gift_create(self, req):
        self.core.sessions.begin(req.user_id, 'gift_create')
        await self.reply(req, "🎁 کد، مقدار و ظرفیت را با فاصله ارسال کنید (مثال: WELCOME10 10 100، ظرفیت 0 = نامحدود):",
                         keyboards.cancel_keyboard())

    async def on_gift_create_input(self, req):
        parts = req.text.split()
        if len(parts) not in (2, 3):
            raise ValidationError('❌ قالب: CODE AMOUNT [MAX_USES]')
        amount = parse_int(parts[1], minimum=1)
        max_uses = parse_int(parts[2], minimum=0) if len(parts) == 3 else 0
        gift = self.core.gifts.create(parts[0], amount, max_uses)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ کد {gift.code} با مقدار {gift.amount} الماس ساخته شد.",
                         keyboards.gifts_keyboard(self.core.gifts.list()))

    @admin_only
    async def toggle_gift(self, req, code: str):
        self.core.gifts.toggle(code)
        await self.show_gifts(req)

    @admin_only
    async def delete_gift(self, req, code: str):
        self.core.gifts.delete(code)
        await self.show_gifts(req)

    # Missions
    @admin_only
    async def show_missions_admin(self, req):
        missions = self.core.missions.list()
        lines = [f"{'✅' if m.enabled else '⛔️'} {m.id} | {m.type}/{m.period} | {m.title} (+{m.reward})" for m in missions]
        await self.reply(req, "📆 مأموریت‌ها:\n" + ('\n'.join(lines) or '—'), keyboards.missions_admin_keyboard(missions))

    async def _start_mission_flow(self, req, kind: str, mission_type: str):
        self.core.sessions.begin(req.user_id, kind, step='title', draft={'type': mission_type, 'config': {}})
        await self.reply(req, "📝 عنوان مأموریت را ارسال کنید:", keyboards.cancel_keyboard())

    @admin_only
    async def start_mission_create(self, req):
        await self._start_mission_flow(req, 'mission_create', MissionType.GENERIC.value)

    @admin_only
    async def start_quiz_create(self, req):
        await self._start_mission_flow(req, 'mission_quiz', MissionType.QUIZ.value)

    @admin_only
    async def start_question_create(self, req):
        await self._start_mission_flow(req, 'mission_question', MissionType.QUESTION.value)

    @admin_only
    async def start_invite_create(self, req):
        await self._start_mission_flow(req, 'mission_invite', MissionType.INVITE.value)

    async def on_mission_input(self, req):
        """Collect mission fields step by step; the period is chosen with a button"""
        pending = req.pending
        sessions = self.core.sessions
        config = dict(pending.draft.get('config') or {})
        step = pending.step
        text = req.text
        if not text:
            raise ValidationError('❌ مقدار را به صورت متن ارسال کنید.')

        if step == 'title':
            sessions.advance(req.user_id, req.session, 'reward', title=text)
            await self.reply(req, "💎 پاداش (الماس) را ارسال کنید:", keyboards.cancel_keyboard())
            return
        if step == 'reward':
            reward = parse_int(text, minimum=1)
            if pending.kind in ('mission_quiz', 'mission_question'):
                sessions.advance(req.user_id, req.session, 'question', reward=reward)
                await self.reply(req, "❓ متن سوال را ارسال کنید:", keyboards.cancel_keyboard())
            elif pending.kind == 'mission_invite':
                sessions.advance(req.user_id, req.session, 'needed', reward=reward)
                await self.reply(req, "👥 تعداد دعوت لازم در هفته را ارسال کنید:", keyboards.cancel_keyboard())
            else:
                sessions.advance(req.user_id, req.session, 'period', reward=reward)
                await self.reply(req, "⏱ دوره مأموریت را انتخاب کنید:", keyboards.period_keyboard('ADMIN:MIS:PERIOD'))
            return
        if step == 'question':
            config['question'] = text
            if pending.kind == 'mission_quiz':
                sessions.advance(req.user_id, req.session, 'options', config=config)
                await self.reply(req, "🔢 گزینه‌ها را هر کدام در یک خط ارسال کنید (یا - برای پاسخ متنی):",
                                 keyboards.cancel_keyboard())
            else:
                sessions.advance(req.user_id, req.session, 'answer', config=config)
                await self.reply(req, "✅ پاسخ صحیح را ارسال کنید:", keyboards.cancel_keyboard())
            return
        if step == 'options':
            options = [] if text == '-' else [o.strip() for o in text.splitlines() if o.strip()]
            if len(options) == 1:
                raise ValidationError('❌ حداقل دو گزینه لازم است.')
            config['options'] = options
            sessions.advance(req.user_id, req.session, 'answer', config=config)
            prompt = f"✅ شماره گزینه صحیح (1 تا {len(options)}) را ارسال کنید:" if options else "✅ پاسخ صحیح را ارسال کنید:"
            await self.reply(req, prompt, keyboards.cancel_keyboard())
            return
        if step == 'answer':
            options = config.get('options') or []
            if options:
                config['correct_index'] = parse_int(text, 1, len(options)) - 1
            else:
                config['answer'] = text
            sessions.advance(req.user_id, req.session, 'period', config=config)
            await self.reply(req, "⏱ دوره مأموریت را انتخاب کنید:", keyboards.period_keyboard('ADMIN:MIS:PERIOD'))
            return
        if step == 'needed':
            config['needed'] = parse_int(text, minimum=1)
            sessions.advance(req.user_id, req.session, 'period', config=config)
            await self.reply(req, "⏱ دوره مأموریت را انتخاب کنید:", keyboards.period_keyboard('ADMIN:MIS:PERIOD'))
            return
        raise ValidationError('⏱ دوره مأموریت را با دکمه‌ها انتخاب کنید.')

    @admin_only
    async def choose_mission_period(self, req, period: str):
        pending = req.pending
        if not pending or not pending.kind.startswith('mission_') or pending.step != 'period':
            raise StateError()
        draft = dict(pending.draft, period=period)
        result = await self.core.admin_create_mission(req.user_id, draft)
        if not result.ok:
            await self.reply(req, result.message, keyboards.period_keyboard('ADMIN:MIS:PERIOD'))
            return
        self.core.sessions.clear(req.user_id)
        mission = result.value
        await self.reply(req, f"✅ مأموریت {mission.id} ساخته شد: {mission.title} (+{mission.reward})",
                         keyboards.missions_admin_keyboard(self.core.missions.list()))

    @admin_only
    async def start_mission_edit(self, req):
        self.core.sessions.begin(req.user_id, 'mission_edit', step='id')
        await self.reply(req, "✏️ شناسه مأموریت را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_mission_edit_input(self, req):
        pending = req.pending
        sessions = self.core.sessions
        if pending.step == 'id':
            if self.core.missions.get(req.text) is None:
                raise ValidationError('❌ مأموریت یافت نشد. شناسه را دوباره ارسال کنید.')
            sessions.advance(req.user_id, req.session, 'field', id=req.text)
            await self.reply(req, "🔤 فیلد را ارسال کنید: title، reward یا period", keyboards.cancel_keyboard())
        elif pending.step == 'field':
            if req.text not in ('title', 'reward', 'period'):
                raise ValidationError('❌ فیلد باید title، reward یا period باشد.')
            sessions.advance(req.user_id, req.session, 'value', field=req.text)
            await self.reply(req, "✏️ مقدار جدید را ارسال کنید:", keyboards.cancel_keyboard())
        else:
            mission = self.core.missions.update_field(pending.draft['id'], pending.draft['field'], req.text)
            sessions.clear(req.user_id)
            await self.reply(req, f"✅ مأموریت {mission.id} به‌روزرسانی شد.",
                             keyboards.missions_admin_keyboard(self.core.missions.list()))

    @admin_only
    async def toggle_mission(self, req, mission_id: str):
        self.core.missions.toggle(mission_id)
        await self.show_missions_admin(req)

    @admin_only
    async def delete_mission(self, req, mission_id: str):
        self.core.missions.delete(mission_id)
        await self.show_missions_admin(req)

    # Lottery
    @admin_only
    async def show_lottery_admin(self, req):
        config = self.core.lottery.config()
        text = (
            f"🎟 قرعه‌کشی\n"
            f"وضعیت: {'فعال' if config.enabled else 'غیرفعال'}\n"
            f"برندگان: {config.winners} | جایزه: {config.reward_diamonds} الماس\n"
            f"هر {config.run_every_hours} ساعت | اجرای بعدی: {format_date(config.next_run_at)}\n"
            f"شرکت‌کنندگان امروز: {len(self.core.lottery.pool())}"
        )
        await self.reply(req, text, keyboards.lottery_admin_keyboard(config))

    @admin_only
    async def toggle_lottery(self, req):
        self.core.lottery.toggle()
        await self.show_lottery_admin(req)

    @admin_only
    async def start_lottery_config(self, req):
        self.core.sessions.begin(req.user_id, 'lottery_config')
        await self.reply(req, "✏️ تعداد برندگان، جایزه و فاصله (ساعت) را با فاصله ارسال کنید (مثال: 3 5 24):",
                         keyboards.cancel_keyboard())

    async def on_lottery_config_input(self, req):
        parts = req.text.split()
        if len(parts) != 3:
            raise ValidationError('❌ سه عدد با فاصله ارسال کنید (مثال: 3 5 24).')
        winners, reward, hours = (parse_int(p, minimum=1) for p in parts)
        self.core.lottery.configure(winners, reward, hours)
        self.core.sessions.clear(req.user_id)
        await self.show_lottery_admin(req)

    async def announce_winners(self, winners, reward: int):
        for winner in winners:
            await self.transport.send_message(winner, MESSAGES['lottery_won'].format(reward=reward))

    @admin_only
    async def run_lottery_now(self, req):
        lottery = self.core.lottery
        winners = lottery.draw(day_key(self.core.clock()))
        if winners is None:
            await self.reply(req, "ℹ️ قرعه‌کشی انجام نشد (غیرفعال، بدون شرکت‌کننده یا قبلاً انجام شده).",
                             keyboards.back_to_panel())
            return
        await self.announce_winners(winners, lottery.config().reward_diamonds)
        await self.reply(req, "🎉 برندگان:\n" + '\n'.join(str(w) for w in winners), keyboards.back_to_panel())

    @admin_only
    async def show_lottery_history(self, req):
        entries = self.core.lottery.history()
        lines = [f"{e['day']}: {', '.join(str(w) for w in e['winners'])} (+{e['reward_diamonds']})" for e in entries]
        await self.reply(req, "📜 تاریخچه قرعه‌کشی:\n" + ('\n'.join(lines) or '—'), keyboards.back_to_panel())

    # Backup
    @admin_only
    async def send_backup(self, req):
        backup = create_backup(self.core)
        data = json.dumps(backup, ensure_ascii=False, indent=2).encode('utf-8')
        sent = await self.transport.upload_document(req.chat_id, data, backup_filename(self.core.clock()),
                                                    caption="🗄 فایل پشتیبان")
        if not sent:
            await self.reply(req, "❌ ارسال فایل پشتیبان ناموفق بود.", keyboards.back_to_panel())
