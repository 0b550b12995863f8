"""
Conversation state machine.

Each inbound event is resolved into a ``Request`` (admin list, user, session)
once, then dispatched to exactly one handler: a pending-interaction handler
keyed by ``Pending.kind``, a command, a callback route (exact data first, then
the longest matching prefix) or the main menu.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional
import logging

import keyboards
from admin_handlers import AdminHandlersMixin
from advanced_config import LIMITS, TICKET_CATEGORIES, TOGGLEABLE_BUTTONS, TRANSFER_SETTINGS
from config import MAIN_ADMIN_USERNAME, MESSAGES, PAYMENT_METHODS, WEBHOOK_URL
from delivery import AwaitingPayment, Delivered, Denied, parse_deep_link
from errors import (ERROR_CODES, BotError, InsufficientResourceError, NotFoundError,
                    PermissionDeniedError, StateError, ValidationError)
from models import User
from sessions import Session
from utils import format_date, format_duration, format_size, is_valid_token, parse_int

logger = logging.getLogger(__name__)


@dataclass
class Media:
    type: str
    file_id: str
    name: str = ''
    size: int = 0


@dataclass
class Event:
    """A platform-neutral inbound message or button press"""
    user_id: int
    chat_id: int
    username: Optional[str] = None
    first_name: str = ''
    text: str = ''
    callback_data: Optional[str] = None
    callback_id: Optional[str] = None
    media: Optional[Media] = None

    @property
    def is_callback(self) -> bool:
        return self.callback_data is not None


@dataclass
class Request:
    event: Event
    admins: FrozenSet[int]
    user: User
    session: Session
    is_new: bool = False

    @property
    def user_id(self) -> int:
        return self.event.user_id

    @property
    def chat_id(self) -> int:
        return self.event.chat_id

    @property
    def is_admin(self) -> bool:
        return self.event.user_id in self.admins

    @property
    def text(self) -> str:
        return (self.event.text or '').strip()

    @property
    def pending(self):
        return self.session.pending


class Conversation(AdminHandlersMixin):
    def __init__(self, core):
        self.core = core
        self.transport = core.transport

        self.callbacks = {
            'MENU': self.show_menu,
            'NOOP': self.noop,
            'CANCEL': self.cancel,
            'CHECK_JOIN': self.check_join,
            'SUB:ACCOUNT': self.show_account,
            'PROFILE': self.show_account,
            'SUB:REFERRAL': self.show_referral,
            'GET_BY_TOKEN': self.start_get_by_token,
            'REDEEM_GIFT': self.start_redeem_gift,
            'BAL:START': self.start_transfer,
            'BAL:CONFIRM': self.confirm_transfer,
            'SUPPORT': self.show_support,
            'SUPPORT:MSG': self.start_support_message,
            'TICKET:NEW': self.start_ticket,
            'TKT:SUBMIT': self.submit_ticket,
            'TICKET:MY': self.show_my_tickets,
            'BUY_DIAMONDS': self.show_packages,
            'MISSIONS': self.show_missions,
            'WEEKLY_CHECKIN': self.weekly_checkin,
            'LEADERBOARD': self.show_leaderboard,
            'LOTTERY': self.show_lottery,
            'LOTTERY:ENROLL': self.enroll_lottery,
        }
        self.prefix_callbacks = {
            'CONFIRM_SPEND:': self.confirm_spend,
            'DPKG:': self.choose_package,
            'TKT:CAT:': self.choose_ticket_category,
            'TKT:VIEW:': self.view_ticket,
            'TKT:REPLY:': self.start_ticket_reply,
            'MIS:QUIZ_ANS:': self.answer_quiz,
            'MIS:QUIZ:': self.open_quiz,
            'MIS:Q:': self.open_question,
            'MYFILES:': self.show_my_files,
            'DETAILS:': self.show_file,
            'LINK:': self.show_link,
            'SEND:': self.send_file,
            'RENAME:': self.start_rename,
        }
        self.pending_handlers = {
            'get_by_token': self.on_token_input,
            'redeem_gift': self.on_gift_input,
            'transfer': self.on_transfer_input,
            'support': self.on_support_input,
            'ticket_new': self.on_ticket_input,
            'ticket_reply': self.on_ticket_reply_input,
            'payment_receipt': self.on_receipt_input,
            'mission_answer': self.on_mission_answer_input,
            'rename': self.on_rename_input,
        }
        self.commands = {
            '/start': self.cmd_start,
            '/join': self.check_join,
            '/profile': self.show_account,
            '/myfiles': self.show_my_files,
            '/missions': self.show_missions,
            '/cancel': self.cancel,
        }
        admin_exact, admin_prefix, admin_pending, admin_commands = self.admin_routes()
        self.callbacks.update(admin_exact)
        self.prefix_callbacks.update(admin_prefix)
        self.pending_handlers.update(admin_pending)
        self.commands.update(admin_commands)
        # Longest prefix wins, so 'MIS:QUIZ_ANS:' is tried before 'MIS:QUIZ:'
        self._prefixes = sorted(self.prefix_callbacks, key=len, reverse=True)

    # Entry point
    async def handle(self, event: Event):
        """Process one inbound event; never raises"""
        try:
            req = await self._build_request(event)
            if req is None:
                return
            try:
                if event.is_callback:
                    await self._on_callback(req)
                else:
                    await self._on_message(req)
            except BotError as e:
                await self._on_denied(req, e)
        except Exception as e:
            logger.error(f"Error handling update from {event.user_id}: {e}", exc_info=True)
            await self.transport.send_message(event.chat_id, MESSAGES['generic_error'])

    async def _build_request(self, event: Event) -> Optional[Request]:
        core = self.core
        admins = frozenset(core.ledger.admin_ids())
        core.db.put('bot:last_webhook', core.clock())
        if event.callback_id:
            await self.transport.answer_callback(event.callback_id)
        if event.user_id not in admins and core.security.is_blocked(event.user_id):
            await self.transport.send_message(event.chat_id, MESSAGES['blocked'])
            return None
        user, is_new = core.ledger.touch(event.user_id, event.username, event.first_name)
        if is_new:
            core.lottery.auto_enroll(event.user_id)
        return Request(event=event, admins=admins, user=user,
                       session=core.sessions.get(event.user_id), is_new=is_new)

    async def _on_message(self, req: Request):
        text = req.text
        command = text.split()[0].split('@')[0].lower() if text.startswith('/') else None
        pending = req.pending

        if command == '/cancel':
            await self.cancel(req)
            return

        if command == '/start':
            await self.cmd_start(req)
            return

        if not req.is_admin and self.core.security.required_channels():
            if not await self.core.security.check_membership(req.user_id):
                await self.present_join(req)
                return

        if pending and command is None:
            if pending.admin_only and not req.is_admin:
                raise PermissionDeniedError()
            handler = self.pending_handlers.get(pending.kind)
            if handler:
                await handler(req)
                return

        if command in self.commands:
            await self.commands[command](req)
            return

        if req.is_admin and req.event.media:
            await self.quick_upload(req)
            return

        await self.show_menu(req)

    async def _on_callback(self, req: Request):
        data = req.event.callback_data or ''
        if data in TOGGLEABLE_BUTTONS and not req.is_admin and self.core.settings.is_button_disabled(data):
            await self.reply(req, MESSAGES['button_disabled'])
            return

        handler = self.callbacks.get(data)
        if handler:
            await handler(req)
            return
        for prefix in self._prefixes:
            if data.startswith(prefix):
                await self.prefix_callbacks[prefix](req, data[len(prefix):])
                return
        logger.warning(f"Unknown callback data: {data}")

    async def _on_denied(self, req: Request, error: BotError):
        if isinstance(error, ValidationError):
            # Re-prompt in place; the session keeps its current step
            await self.reply(req, error.message, keyboards.cancel_keyboard() if req.pending else None)
            return
        if isinstance(error, (PermissionDeniedError, NotFoundError, StateError)):
            self.core.sessions.clear(req.user_id)
            await self.reply(req, error.message, self.main_menu(req))
            return
        if isinstance(error, InsufficientResourceError) and error.need is not None:
            await self.reply(req, MESSAGES['insufficient_balance'].format(need=error.need, have=error.have))
            return
        await self.reply(req, error.message)

    # Helpers
    async def reply(self, req: Request, text: str, reply_markup=None, parse_mode: str = None) -> bool:
        return await self.transport.send_message(req.chat_id, text, reply_markup=reply_markup, parse_mode=parse_mode)

    def main_menu(self, req: Request):
        return keyboards.main_menu(self.core.settings, req.is_admin)

    async def notify_admins(self, req: Request, text: str, reply_markup=None):
        for admin_id in req.admins:
            await self.transport.send_message(admin_id, text, reply_markup=reply_markup)

    async def share_link(self, token: str) -> str:
        username = await self.transport.get_username()
        if username:
            return f"https://t.me/{username}?start=d_{token}"
        if WEBHOOK_URL:
            return f"{WEBHOOK_URL.rstrip('/').rsplit('/', 1)[0]}/f/{token}"
        return f"/f/{token}"

    async def present_join(self, req: Request):
        channels = self.core.security.required_channels()
        text = MESSAGES['join_required'] + '\n' + '\n'.join(channels)
        await self.reply(req, text, keyboards.join_keyboard(channels))

    def _require_owner(self, req: Request, token: str):
        item = self.core.files.require(token)
        if item.owner != req.user_id and not req.is_admin:
            raise PermissionDeniedError()
        return item

    # Basic navigation
    async def noop(self, req: Request):
        return

    async def show_menu(self, req: Request):
        await self.reply(req, MESSAGES['main_menu'], self.main_menu(req))

    async def cancel(self, req: Request):
        self.core.sessions.clear(req.user_id)
        await self.reply(req, MESSAGES['cancelled'], self.main_menu(req))

    async def cmd_start(self, req: Request):
        """Start command handler"""
        core = self.core
        parts = req.text.split(maxsplit=1)
        payload = parts[1].strip() if len(parts) > 1 else ''
        session = Session(pending_ref=req.session.pending_ref, pending_download=req.session.pending_download)

        deep_link = parse_deep_link(payload)
        if deep_link:
            core.sessions.save(req.user_id, session)
            req.session = session
            token, ref = deep_link
            await self.fetch(req, token, ref)
            return

        if payload.isdigit() and int(payload) != req.user_id:
            referrer_id = int(payload)
            core.referrals.attribute(req.user_id, referrer_id)
            session.pending_ref = referrer_id
            await core.referrals.credit(req.user_id, referrer_id)
        core.sessions.save(req.user_id, session)

        settings = core.settings.get()
        if core.settings.is_update_mode() and not req.is_admin:
            welcome = MESSAGES['service_unavailable']
        else:
            welcome = settings['welcome_message'] or MESSAGES['welcome']
        await self.reply(req, welcome, self.main_menu(req))

        if not req.is_admin and core.security.required_channels():
            if not await core.security.check_membership(req.user_id):
                await self.present_join(req)

    async def check_join(self, req: Request):
        core = self.core
        joined = await core.security.check_membership(req.user_id)
        user = core.ledger.ensure_user(req.user_id)
        user.joined = joined
        core.ledger.save_user(user)
        if not joined:
            await self.reply(req, MESSAGES['join_failed'], keyboards.join_keyboard(core.security.required_channels()))
            return

        session = req.session
        pending_download = session.pending_download or {}
        referrer_id = pending_download.get('ref') or session.pending_ref or user.referred_by
        if referrer_id:
            await core.referrals.credit(req.user_id, int(referrer_id))

        if pending_download.get('token'):
            session.pending_download = None
            session.pending_ref = None
            core.sessions.save(req.user_id, session)
            await self.reply(req, MESSAGES['join_ok'])
            await self.fetch(req, pending_download['token'], pending_download.get('ref'))
            return
        await self.reply(req, MESSAGES['join_ok'], self.main_menu(req))

    async def show_account(self, req: Request):
        user = self.core.ledger.ensure_user(req.user_id)
        text = (
            f"📊 پروفایل شما:\n\n"
            f"👤 آی‌دی: {user.id}\n"
            f"🏷 یوزرنیم: {('@' + user.username) if user.username else '-'}\n"
            f"💎 الماس: {user.diamonds}\n"
            f"📈 معرفی‌ها: {user.referrals}\n"
            f"📅 عضویت: {format_date(user.created_at)}"
        )
        await self.reply(req, text, keyboards.account_keyboard())

    async def show_referral(self, req: Request):
        username = await self.transport.get_username()
        link = f"https://t.me/{username}?start={req.user_id}" if username else str(req.user_id)
        user = self.core.ledger.ensure_user(req.user_id)
        weekly = self.core.referrals.weekly_count(req.user_id)
        text = (
            f"👥 لینک دعوت شما:\n{link}\n\n"
            f"به ازای هر کاربر جدید ۱ الماس دریافت می‌کنید.\n"
            f"تعداد کل معرفی‌ها: {user.referrals}\n"
            f"معرفی‌های این هفته: {weekly}"
        )
        await self.reply(req, text, keyboards.menu_keyboard())

    # File delivery
    async def fetch(self, req: Request, token: str, referrer_id: int = None):
        outcome = await self.core.fetch_file(req.user_id, token, referrer_id, is_admin=req.is_admin)
        await self.render_outcome(req, outcome, token, referrer_id)

    async def render_outcome(self, req: Request, outcome, token: str, referrer_id: int = None):
        core = self.core
        if isinstance(outcome, Delivered):
            if outcome.charged:
                await self.reply(req, f"💎 {outcome.charged} الماس کسر شد. موجودی: {core.ledger.balance(req.user_id)} الماس")
            return
        if isinstance(outcome, AwaitingPayment):
            core.sessions.begin(req.user_id, 'confirm_spend', target=token,
                                draft={'cost': outcome.cost, 'ref': outcome.referrer_id})
            text = MESSAGES['quote'].format(cost=outcome.cost, balance=outcome.balance)
            if not outcome.affordable:
                text += '\n\n' + MESSAGES['quote_short']
            await self.reply(req, text, keyboards.quote_keyboard(token))
            return
        if outcome.reason == 'join_required':
            session = core.sessions.get(req.user_id)
            session.pending_download = {'token': token, 'ref': referrer_id}
            core.sessions.save(req.user_id, session)
            await self.present_join(req)
            return
        await self.reply(req, outcome.text, self.main_menu(req))

    async def confirm_spend(self, req: Request, token: str):
        pending = req.pending
        if not pending or pending.kind != 'confirm_spend' or pending.target != token:
            raise StateError()
        self.core.sessions.clear(req.user_id)
        ref = pending.draft.get('ref')
        outcome = await self.core.confirm_spend(req.user_id, token, int(pending.draft.get('cost') or 0), ref,
                                                is_admin=req.is_admin)
        await self.render_outcome(req, outcome, token, ref)

    async def start_get_by_token(self, req: Request):
        self.core.sessions.begin(req.user_id, 'get_by_token')
        await self.reply(req, "🔑 توکن فایل را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_token_input(self, req: Request):
        token = req.text
        if not is_valid_token(token):
            raise ValidationError(ERROR_CODES['invalid_token'])
        if not self.core.rate_limiter.check(req.user_id, 'get_by_token'):
            raise InsufficientResourceError(reason='rate_limited')
        self.core.sessions.clear(req.user_id)
        await self.fetch(req, token)

    # Gift codes
    async def start_redeem_gift(self, req: Request):
        self.core.sessions.begin(req.user_id, 'redeem_gift')
        await self.reply(req, "🎁 کد هدیه را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_gift_input(self, req: Request):
        if not req.text:
            raise ValidationError('❌ کد را به صورت متن ارسال کنید.')
        self.core.sessions.clear(req.user_id)
        result = await self.core.redeem_gift(req.user_id, req.text)
        if result.ok:
            await self.reply(req, MESSAGES['gift_redeemed'].format(amount=result.amount), self.main_menu(req))
        else:
            await self.reply(req, ERROR_CODES.get(result.reason, ERROR_CODES['not_found']), self.main_menu(req))

    # Transfers
    async def start_transfer(self, req: Request):
        self.core.sessions.begin(req.user_id, 'transfer', step='to')
        await self.reply(req, "🔁 آی‌دی عددی گیرنده را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_transfer_input(self, req: Request):
        sessions = self.core.sessions
        if req.pending.step == 'to':
            to_id = parse_int(req.text, minimum=1)
            if to_id == req.user_id:
                raise ValidationError('❌ انتقال به خودتان ممکن نیست.')
            sessions.advance(req.user_id, req.session, 'amount', to=to_id)
            await self.reply(
                req,
                f"💎 مقدار الماس ({TRANSFER_SETTINGS['min_amount']} تا {TRANSFER_SETTINGS['max_amount']}) را ارسال کنید:",
                keyboards.cancel_keyboard()
            )
        elif req.pending.step == 'amount':
            amount = parse_int(req.text, TRANSFER_SETTINGS['min_amount'], TRANSFER_SETTINGS['max_amount'])
            balance = self.core.ledger.balance(req.user_id)
            if balance < amount:
                raise ValidationError(MESSAGES['insufficient_balance'].format(need=amount, have=balance))
            sessions.advance(req.user_id, req.session, 'confirm', amount=amount)
            await self.reply(
                req,
                f"آیا از انتقال {amount} الماس به کاربر {req.pending.draft['to']} اطمینان دارید؟",
                keyboards.transfer_confirm_keyboard()
            )

    async def confirm_transfer(self, req: Request):
        pending = req.pending
        if not pending or pending.kind != 'transfer' or pending.step != 'confirm':
            raise StateError()
        self.core.sessions.clear(req.user_id)
        to_id, amount = int(pending.draft['to']), int(pending.draft['amount'])
        result = await self.core.confirm_transfer(req.user_id, to_id, amount)
        if result.ok:
            await self.reply(req, MESSAGES['transfer_done'].format(amount=amount, to=to_id), self.main_menu(req))
        else:
            await self.reply(req, result.message or ERROR_CODES.get(result.reason, MESSAGES['generic_error']),
                             self.main_menu(req))

    # Support and tickets
    async def show_support(self, req: Request):
        contact = f"\nارتباط مستقیم: @{MAIN_ADMIN_USERNAME}" if MAIN_ADMIN_USERNAME else ''
        await self.reply(req, f"🆘 پشتیبانی{contact}", keyboards.support_keyboard())

    async def start_support_message(self, req: Request):
        self.core.sessions.begin(req.user_id, 'support')
        await self.reply(req, "✉️ پیام خود را برای پشتیبانی ارسال کنید:", keyboards.cancel_keyboard())

    async def on_support_input(self, req: Request):
        if not req.text:
            raise ValidationError('❌ لطفاً پیام را به صورت متن ارسال کنید.')
        self.core.sessions.clear(req.user_id)
        admin_ids = self.core.ledger.admin_ids()
        main_admin = admin_ids[0] if admin_ids else None
        if main_admin is None:
            await self.reply(req, MESSAGES['generic_error'])
            return
        who = f"@{req.event.username}" if req.event.username else req.event.first_name
        sent = await self.transport.send_message(
            main_admin,
            f"📩 پیام پشتیبانی از {who} ({req.user_id}):\n\n{req.text}",
            reply_markup=keyboards.InlineKeyboardMarkup([[keyboards.button("✉️ پاسخ", f'SUPREPLY:{req.user_id}')]])
        )
        await self.reply(req, "✅ پیام شما ارسال شد." if sent else ERROR_CODES['transport_error'], self.main_menu(req))

    async def start_ticket(self, req: Request):
        self.core.sessions.begin(req.user_id, 'ticket_new', step='category')
        await self.reply(req, "🎫 دسته‌بندی تیکت را انتخاب کنید:", keyboards.ticket_categories_keyboard())

    async def choose_ticket_category(self, req: Request, arg: str):
        pending = req.pending
        if not pending or pending.kind != 'ticket_new':
            raise StateError()
        index = parse_int(arg, 0, len(TICKET_CATEGORIES) - 1)
        self.core.sessions.advance(req.user_id, req.session, 'desc', category=TICKET_CATEGORIES[index])
        await self.reply(req, "📝 توضیحات تیکت را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_ticket_input(self, req: Request):
        if req.pending.step != 'desc':
            raise ValidationError('❌ ابتدا دسته‌بندی را انتخاب کنید.')
        desc = req.text
        if not desc:
            raise ValidationError('❌ توضیحات نمی‌تواند خالی باشد.')
        if len(desc) > LIMITS['ticket_desc_max']:
            raise ValidationError(f"❌ حداکثر {LIMITS['ticket_desc_max']} کاراکتر مجاز است.")
        self.core.sessions.advance(req.user_id, req.session, 'confirm', desc=desc)
        await self.reply(
            req,
            f"🎫 پیش‌نمایش تیکت:\nدسته: {req.pending.draft['category']}\n\n{desc}",
            keyboards.ticket_submit_keyboard()
        )

    async def submit_ticket(self, req: Request):
        pending = req.pending
        if not pending or pending.kind != 'ticket_new' or pending.step != 'confirm':
            raise StateError()
        ticket = self.core.tickets.create(req.user_id, pending.draft['category'], pending.draft['desc'],
                                          req.event.username)
        self.core.sessions.clear(req.user_id)
        await self.notify_admins(
            req, f"🎫 تیکت جدید {ticket.id} از {req.user_id}\nدسته: {ticket.category}\n\n{ticket.desc}",
            keyboards.ticket_admin_keyboard(ticket)
        )
        await self.reply(req, f"✅ تیکت شما با شناسه {ticket.id} ثبت شد.", self.main_menu(req))

    async def show_my_tickets(self, req: Request):
        tickets = self.core.tickets.list_user(req.user_id)
        if not tickets:
            await self.reply(req, "📋 تیکتی ثبت نکرده‌اید.", keyboards.support_keyboard())
            return
        rows = [[keyboards.button(f"{'🟢' if t.status == 'open' else '⚪️'} {t.id} | {t.subject[:20]}", f'TKT:VIEW:{t.id}')]
                for t in tickets]
        rows.append([keyboards.button("🏠 منوی اصلی", 'MENU')])
        await self.reply(req, "📋 تیکت‌های شما:", keyboards.InlineKeyboardMarkup(rows))

    async def view_ticket(self, req: Request, ticket_id: str):
        ticket = self.core.tickets.require(ticket_id)
        if ticket.user_id != req.user_id:
            raise NotFoundError('❌ تیکت یافت نشد.')
        lines = [f"{'👤' if m['from'] == 'user' else '🛠'} {m['text']}" for m in self.core.tickets.messages(ticket_id, 10)]
        rows = []
        if ticket.status == 'open':
            rows.append([keyboards.button("✉️ پاسخ", f'TKT:REPLY:{ticket.id}')])
        rows.append([keyboards.button("⬅️ بازگشت", 'TICKET:MY')])
        await self.reply(req, f"🎫 تیکت {ticket.id} ({ticket.status})\nدسته: {ticket.category}\n\n" + '\n'.join(lines),
                         keyboards.InlineKeyboardMarkup(rows))

    async def start_ticket_reply(self, req: Request, ticket_id: str):
        ticket = self.core.tickets.require(ticket_id)
        if ticket.user_id != req.user_id or ticket.status == 'closed':
            raise StateError()
        self.core.sessions.begin(req.user_id, 'ticket_reply', target=ticket_id)
        await self.reply(req, "✉️ پیام خود را برای افزودن به این تیکت ارسال کنید:", keyboards.cancel_keyboard())

    async def on_ticket_reply_input(self, req: Request):
        if not req.text:
            raise ValidationError('❌ لطفاً پیام را به صورت متن ارسال کنید.')
        ticket = self.core.tickets.user_reply(req.pending.target, req.user_id, req.text)
        self.core.sessions.clear(req.user_id)
        await self.notify_admins(req, f"✉️ پیام جدید در تیکت {ticket.id} از {req.user_id}:\n\n{req.text}",
                                 keyboards.ticket_admin_keyboard(ticket))
        await self.reply(req, "✅ پیام شما به تیکت اضافه شد.", self.main_menu(req))

    # Purchases
    async def show_packages(self, req: Request):
        await self.reply(req, "💳 بسته مورد نظر را انتخاب کنید:", keyboards.packages_keyboard())

    async def choose_package(self, req: Request, package_id: str):
        purchase = self.core.purchases.create(req.user_id, package_id)
        self.core.sessions.begin(req.user_id, 'payment_receipt', target=purchase.id)
        card = PAYMENT_METHODS['card']
        text = MESSAGES['payment_info'].format(diamonds=purchase.diamonds, price=purchase.price_toman,
                                               card=card['number'], name=card['name'], id=purchase.id)
        await self.reply(req, text, keyboards.cancel_keyboard(), parse_mode='Markdown')

    async def on_receipt_input(self, req: Request):
        media = req.event.media
        if media is None or media.type not in ('photo', 'document'):
            raise ValidationError('❌ لطفاً تصویر یا فایل رسید را ارسال کنید.')
        purchase = self.core.purchases.attach_receipt(req.pending.target, req.user_id, media.file_id,
                                                      media.type == 'photo')
        self.core.sessions.clear(req.user_id)
        caption = (f"💳 رسید خرید {purchase.id}\nکاربر: {req.user_id}\n"
                   f"بسته: {purchase.diamonds} الماس — {purchase.price_toman:,} تومان")
        for admin_id in req.admins:
            await self.transport.send_content(admin_id, media.type, file_id=media.file_id, caption=caption,
                                              reply_markup=keyboards.purchase_review_keyboard(purchase.id))
        await self.reply(req, MESSAGES['receipt_received'], self.main_menu(req))

    # Missions
    async def show_missions(self, req: Request):
        core = self.core
        for mission in core.missions.check_invites(req.user_id):
            await self.reply(req, MESSAGES['mission_done'].format(title=mission.title, reward=mission.reward))
        missions = core.missions.list(enabled_only=True)
        progress = core.missions.progress(req.user_id)
        periods = {'once': 'یکبار', 'daily': 'روزانه', 'weekly': 'هفتگی'}
        lines = []
        for mission in missions:
            done = core.missions.is_done(req.user_id, mission, progress)
            line = f"{'✅' if done else '⬜️'} {mission.title} ({periods.get(mission.period, mission.period)}) +{mission.reward} الماس"
            if mission.type == 'invite':
                line += f" [{core.referrals.weekly_count(req.user_id)}/{mission.config.get('needed', 0)}]"
            lines.append(line)
        text = "📆 مأموریت‌ها:\n" + ('\n'.join(lines) if lines else 'فعلاً مأموریتی تعریف نشده است.')
        await self.reply(req, text, keyboards.missions_keyboard(missions))

    async def open_quiz(self, req: Request, mission_id: str):
        mission = self.core.missions.require(mission_id, 'quiz')
        if self.core.missions.is_done(req.user_id, mission):
            await self.reply(req, MESSAGES['mission_already'])
            return
        question = mission.config.get('question', '-')
        note = 'توجه: هر کاربر فقط یک بار می‌تواند پاسخ دهد.'
        if len(mission.config.get('options') or []) >= 2:
            await self.reply(req, f"🎮 {mission.title}\n{question}\n\n{note}", keyboards.quiz_keyboard(mission))
            return
        self.core.sessions.begin(req.user_id, 'mission_answer', target=mission.id)
        await self.reply(req, f"🎮 {mission.title}\n{question}\n\n{note}\nپاسخ خود را ارسال کنید:",
                         keyboards.cancel_keyboard())

    async def open_question(self, req: Request, mission_id: str):
        mission = self.core.missions.require(mission_id, 'question')
        if self.core.missions.is_done(req.user_id, mission):
            await self.reply(req, MESSAGES['mission_already'])
            return
        self.core.sessions.begin(req.user_id, 'mission_answer', target=mission.id)
        await self.reply(req, f"❓ {mission.title}\n{mission.config.get('question', '-')}\n\n"
                              f"توجه: هر کاربر فقط یک بار می‌تواند پاسخ دهد.\nپاسخ خود را ارسال کنید:",
                         keyboards.cancel_keyboard())

    async def _render_answer(self, req: Request, result):
        if result.ok:
            mission = result.value.mission
            await self.reply(req, MESSAGES['mission_done'].format(title=mission.title, reward=mission.reward))
        elif result.reason == 'wrong_answer':
            await self.reply(req, MESSAGES['mission_wrong'])
        else:
            await self.reply(req, result.message, self.main_menu(req))

    async def answer_quiz(self, req: Request, arg: str):
        mission_id, _, index = arg.rpartition(':')
        result = await self.core.submit_mission_answer(req.user_id, mission_id, index)
        await self._render_answer(req, result)

    async def on_mission_answer_input(self, req: Request):
        if not req.text:
            raise ValidationError('❌ پاسخ را به صورت متن ارسال کنید.')
        self.core.sessions.clear(req.user_id)
        result = await self.core.submit_mission_answer(req.user_id, req.pending.target, req.text)
        await self._render_answer(req, result)

    async def weekly_checkin(self, req: Request):
        result = self.core.missions.weekly_checkin(req.user_id)
        if result.ok:
            await self.reply(req, MESSAGES['checkin_ok'].format(reward=result.reward))
        else:
            await self.reply(req, MESSAGES['checkin_wait'].format(remaining=format_duration(result.remaining_ms)))

    async def show_leaderboard(self, req: Request):
        board = self.core.missions.leaderboard(self.core.ledger.user_ids())
        lines = [f"{i}. {uid} — {points} الماس" for i, (uid, points) in enumerate(board, start=1)]
        await self.reply(req, "🏆 جدول امتیاز این هفته:\n" + ('\n'.join(lines) or '—'), keyboards.menu_keyboard())

    # Lottery
    async def show_lottery(self, req: Request):
        lottery = self.core.lottery
        config = lottery.config()
        if not config.enabled:
            await self.reply(req, MESSAGES['lottery_disabled'], keyboards.menu_keyboard())
            return
        enrolled = lottery.is_enrolled(req.user_id)
        text = (f"🎟 قرعه‌کشی روزانه\nتعداد برندگان: {config.winners}\n"
                f"جایزه هر نفر: {config.reward_diamonds} الماس\n"
                f"شرکت‌کنندگان امروز: {len(lottery.pool())}\n"
                f"وضعیت شما: {'ثبت‌نام شده ✅' if enrolled else 'ثبت‌نام نشده'}")
        await self.reply(req, text, keyboards.lottery_keyboard(enrolled))

    async def enroll_lottery(self, req: Request):
        if not self.core.lottery.config().enabled:
            await self.reply(req, MESSAGES['lottery_disabled'])
            return
        if self.core.lottery.enroll(req.user_id):
            await self.reply(req, MESSAGES['lottery_enrolled'])
        else:
            await self.reply(req, MESSAGES['lottery_already'])

    # Own files
    async def show_my_files(self, req: Request, arg: str = '0'):
        page = int(arg) if str(arg).isdigit() else 0
        items, total_pages = self.core.files.list_page(req.user_id, page)
        if not items:
            await self.reply(req, "📂 فایلی ندارید.", keyboards.menu_keyboard())
            return
        page = min(page, total_pages - 1)
        await self.reply(req, f"📂 فایل‌های شما (صفحه {page + 1} از {total_pages}):",
                         keyboards.my_files_keyboard(items, page, total_pages))

    async def show_file(self, req: Request, arg: str):
        token, _, page = arg.partition(':')
        item = self._require_owner(req, token)
        text = (
            f"📄 {item.name}\n"
            f"نوع: {item.type} | حجم: {format_size(item.size)}\n"
            f"💎 هزینه: {item.cost_points}\n"
            f"📥 دانلود: {item.downloads}/{item.max_downloads or '∞'}\n"
            f"وضعیت: {'غیرفعال' if item.disabled else 'فعال'}\n"
            f"آخرین دانلود: {format_date(item.last_download)}\n"
            f"توکن: `{item.token}`"
        )
        await self.reply(req, text, keyboards.file_keyboard(item, int(page) if page.isdigit() else 0, req.is_admin),
                         parse_mode='Markdown')

    async def show_link(self, req: Request, token: str):
        self._require_owner(req, token)
        await self.reply(req, f"🔗 لینک اشتراک:\n{await self.share_link(token)}")

    async def send_file(self, req: Request, token: str):
        self._require_owner(req, token)
        await self.fetch(req, token)

    async def start_rename(self, req: Request, token: str):
        self._require_owner(req, token)
        self.core.sessions.begin(req.user_id, 'rename', target=token)
        await self.reply(req, "✏️ نام جدید را ارسال کنید:", keyboards.cancel_keyboard())

    async def on_rename_input(self, req: Request):
        self._require_owner(req, req.pending.target)
        item = self.core.files.rename(req.pending.target, req.text)
        self.core.sessions.clear(req.user_id)
        await self.reply(req, f"✅ نام فایل به «{item.name}» تغییر کرد.")
