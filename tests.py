import unittest
from unittest.mock import AsyncMock

from cache_manager import SettingsStore, TTLCache
from config import MESSAGES
from conversation import Conversation, Event, Media
from core import BotCore
from database import Database
from delivery import AwaitingPayment, Delivered, Denied, parse_deep_link
from errors import ERROR_CODES, InsufficientResourceError, StateError, ValidationError
from maintenance import create_backup
from transport import Transport
from utils import DAY_MS, day_key, format_duration, parse_int, week_key

# 2024-01-01 00:00 UTC, a Monday
START = 1704067200000
ADMIN = 1


class Clock:
    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class RecordingTransport(Transport):
    def __init__(self):
        self.messages = []
        self.contents = []
        self.documents = []
        self.members = {}

    async def send_message(self, chat_id, text, reply_markup=None, parse_mode=None):
        self.messages.append((chat_id, text))
        return True

    async def send_content(self, chat_id, content_type, file_id=None, text=None, caption=None, reply_markup=None):
        self.contents.append((chat_id, content_type, file_id or text))
        return True

    async def upload_document(self, chat_id, data, filename, caption=None):
        self.documents.append((chat_id, filename, data))
        return True

    async def is_member(self, channel, user_id):
        return user_id in self.members.get(channel, set())

    async def answer_callback(self, callback_id, text=None):
        return True

    async def get_username(self):
        return 'file_bot'

    def texts_to(self, chat_id):
        return [text for cid, text in self.messages if cid == chat_id]


class BotTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        """Set up test environment"""
        self.clock = Clock()
        self.transport = RecordingTransport()
        self.db = Database('sqlite://')
        self.core = BotCore(self.db, self.transport, clock=self.clock)
        self.db.put('bot:join_channels', [])
        self.core.ledger.set_admin_ids([ADMIN])

    def make_file(self, cost: int = 0, max_downloads: int = 0, delete_on_limit: bool = False):
        item = self.core.files.create(ADMIN, 'document', file_id='FILE-1', name='book.pdf', size=2048)
        if cost:
            self.core.files.set_cost(item.token, cost)
        if max_downloads:
            self.core.files.set_limit(item.token, max_downloads, delete_on_limit)
        return self.core.files.get(item.token)


class TestUtils(unittest.TestCase):
    def test_period_keys(self):
        self.assertEqual(day_key(START), '20240101')
        self.assertEqual(week_key(START), '2024-W01')
        self.assertEqual(week_key(START - 1), '2023-W52')

    def test_format_duration_rounds_seconds_up(self):
        self.assertEqual(format_duration(60 * 1000), "0 روز و 0 ساعت و 1 دقیقه و 0 ثانیه")
        self.assertEqual(format_duration(1), "0 روز و 0 ساعت و 0 دقیقه و 1 ثانیه")
        self.assertEqual(format_duration(DAY_MS + 3600 * 1000), "1 روز و 1 ساعت و 0 دقیقه و 0 ثانیه")

    def test_parse_int_bounds(self):
        self.assertEqual(parse_int(' 7 ', 2, 50), 7)
        with self.assertRaises(ValidationError):
            parse_int('abc')
        with self.assertRaises(ValidationError):
            parse_int('1', minimum=2)
        with self.assertRaises(ValidationError):
            parse_int('51', maximum=50)

    def test_parse_deep_link(self):
        self.assertEqual(parse_deep_link('d_abcdefghij_42'), ('abcdefghij', 42))
        self.assertEqual(parse_deep_link('d_abcdefghij'), ('abcdefghij', None))
        self.assertIsNone(parse_deep_link('12345'))


class TestSettingsCache(unittest.TestCase):
    def test_cached_settings_expire_after_max_age(self):
        clock = Clock()
        db = Database('sqlite://')
        settings = SettingsStore(db, TTLCache(10, clock=clock))
        self.assertEqual(settings.get()['daily_limit'], 0)

        db.put('bot:settings', {'daily_limit': 3})
        clock.advance(9999)
        self.assertEqual(settings.get()['daily_limit'], 0)
        clock.advance(1)
        self.assertEqual(settings.get()['daily_limit'], 3)

    def test_save_refreshes_memo(self):
        settings = SettingsStore(Database('sqlite://'), TTLCache(10, clock=Clock()))
        settings.get()
        settings.update(welcome_message='hi')
        self.assertEqual(settings.get()['welcome_message'], 'hi')


class TestLedger(BotTestCase):
    def test_debit_never_goes_negative(self):
        ledger = self.core.ledger
        ledger.credit(10, 10)
        self.assertTrue(ledger.debit(10, 4))
        self.assertEqual(ledger.balance(10), 6)
        self.assertFalse(ledger.debit(10, 7))
        self.assertEqual(ledger.balance(10), 6)

    def test_transfer_bounds(self):
        ledger = self.core.ledger
        ledger.credit(10, 20)
        ledger.ensure_user(11)
        for amount in (1, 51):
            with self.assertRaises(ValidationError):
                ledger.transfer(10, 11, amount)
        with self.assertRaises(ValidationError):
            ledger.transfer(10, 10, 5)
        with self.assertRaises(InsufficientResourceError):
            ledger.transfer(11, 10, 5)
        self.assertEqual(ledger.transfer(10, 11, 10), 10)
        self.assertEqual(ledger.balance(11), 10)

    async def test_confirm_transfer_notifies_recipient(self):
        self.core.ledger.credit(10, 20)
        result = await self.core.confirm_transfer(10, 11, 5)
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 15)
        self.assertIn(MESSAGES['transfer_received'].format(amount=5, frm=10), self.transport.texts_to(11))

    async def test_admin_give_balance(self):
        result = await self.core.admin_give_balance(ADMIN, 10, 5)
        self.assertTrue(result.ok)
        result = await self.core.admin_give_balance(ADMIN, 10, -8)
        self.assertFalse(result.ok)
        self.assertEqual(self.core.ledger.balance(10), 5)
        result = await self.core.admin_give_balance(10, 10, 5)
        self.assertEqual(result.reason, 'permission_denied')

    def test_last_admin_cannot_be_removed(self):
        with self.assertRaises(ValidationError):
            self.core.ledger.remove_admin(ADMIN)


class TestDelivery(BotTestCase):
    async def test_quota_exhausted_after_max_downloads(self):
        item = self.make_file(max_downloads=2)
        for user_id in (10, 11):
            outcome = await self.core.fetch_file(user_id, item.token)
            self.assertIsInstance(outcome, Delivered)
        outcome = await self.core.fetch_file(12, item.token)
        self.assertIsInstance(outcome, Denied)
        self.assertEqual(outcome.reason, 'quota_exhausted')
        self.assertEqual(self.core.files.get(item.token).downloads, 2)

    async def test_delete_on_limit_purges_item(self):
        item = self.make_file(max_downloads=1, delete_on_limit=True)
        outcome = await self.core.fetch_file(10, item.token)
        self.assertTrue(outcome.purged)
        outcome = await self.core.fetch_file(11, item.token)
        self.assertEqual(outcome.reason, 'not_found')
        self.assertNotIn(item.token, self.core.files.list_tokens(ADMIN))

    async def test_scenario_quote_then_confirm(self):
        item = self.make_file(cost=3)
        user = 100

        outcome = await self.core.fetch_file(user, item.token)
        self.assertIsInstance(outcome, AwaitingPayment)
        self.assertEqual((outcome.cost, outcome.balance), (3, 0))
        self.assertFalse(outcome.affordable)

        outcome = await self.core.confirm_spend(user, item.token, 3)
        self.assertEqual(outcome.reason, 'insufficient_balance')
        self.assertEqual((outcome.need, outcome.have), (3, 0))

        self.assertTrue((await self.core.admin_give_balance(ADMIN, user, 5)).ok)
        outcome = await self.core.fetch_file(user, item.token)
        self.assertIsInstance(outcome, AwaitingPayment)
        outcome = await self.core.confirm_spend(user, item.token, 3)
        self.assertIsInstance(outcome, Delivered)
        self.assertEqual(self.core.ledger.balance(user), 2)
        self.assertEqual(self.core.files.get(item.token).downloads, 1)
        self.assertEqual(self.transport.contents[-1], (user, 'document', 'FILE-1'))

    async def test_price_change_requotes(self):
        item = self.make_file(cost=3)
        self.core.ledger.credit(100, 10)
        self.core.files.set_cost(item.token, 4)
        outcome = await self.core.confirm_spend(100, item.token, 3)
        self.assertIsInstance(outcome, AwaitingPayment)
        self.assertEqual(outcome.cost, 4)
        self.assertEqual(self.core.ledger.balance(100), 10)

    async def test_failed_delivery_is_refunded(self):
        item = self.make_file(cost=3)
        self.core.ledger.credit(100, 5)
        self.transport.send_content = AsyncMock(return_value=False)
        outcome = await self.core.confirm_spend(100, item.token, 3)
        self.assertEqual(outcome.reason, 'delivery_failed')
        self.assertEqual(self.core.ledger.balance(100), 5)
        self.assertEqual(self.core.files.get(item.token).downloads, 0)

    async def test_daily_cap(self):
        item = self.make_file(cost=1)
        self.core.settings.update(daily_limit=1)
        self.core.ledger.credit(100, 5)
        self.assertIsInstance(await self.core.confirm_spend(100, item.token, 1), Delivered)
        outcome = await self.core.fetch_file(100, item.token)
        self.assertEqual(outcome.reason, 'daily_cap')
        self.clock.advance(DAY_MS)
        self.assertIsInstance(await self.core.fetch_file(100, item.token), AwaitingPayment)

    async def test_free_downloads_count_toward_daily_cap(self):
        free_item = self.make_file()
        paid_item = self.make_file(cost=1)
        self.core.settings.update(daily_limit=1)
        self.core.ledger.credit(100, 5)
        self.assertIsInstance(await self.core.fetch_file(100, free_item.token), Delivered)
        self.assertEqual(self.core.delivery.daily_usage(100), 1)
        outcome = await self.core.fetch_file(100, paid_item.token)
        self.assertEqual(outcome.reason, 'daily_cap')
        self.assertIsInstance(await self.core.fetch_file(ADMIN, free_item.token), Delivered)
        self.assertEqual(self.core.delivery.daily_usage(ADMIN), 0)

    async def test_membership_required(self):
        item = self.make_file()
        self.db.put('bot:join_channels', ['@news'])
        outcome = await self.core.fetch_file(100, item.token)
        self.assertEqual(outcome.reason, 'join_required')
        self.transport.members['@news'] = {100}
        self.assertIsInstance(await self.core.fetch_file(100, item.token), Delivered)

    async def test_disabled_and_maintenance(self):
        item = self.make_file()
        self.assertTrue((await self.core.admin_toggle_file(ADMIN, item.token)).ok)
        self.assertEqual((await self.core.fetch_file(100, item.token)).reason, 'item_disabled')
        self.core.files.toggle(item.token)
        self.core.settings.toggle_update_mode()
        self.assertEqual((await self.core.fetch_file(100, item.token)).reason, 'service_unavailable')
        self.assertIsInstance(await self.core.fetch_file(ADMIN, item.token), Delivered)

    async def test_file_link_referral_skips_owner(self):
        item = self.make_file()
        self.core.ledger.ensure_user(ADMIN)
        outcome = await self.core.fetch_file(100, item.token, referrer_id=ADMIN)
        self.assertFalse(outcome.referral_paid)
        self.core.ledger.ensure_user(50)
        outcome = await self.core.fetch_file(101, item.token, referrer_id=50)
        self.assertTrue(outcome.referral_paid)
        self.assertEqual(self.core.ledger.balance(50), 1)


class TestReferrals(BotTestCase):
    async def test_bonus_paid_once(self):
        referrals = self.core.referrals
        self.core.ledger.ensure_user(200)
        self.assertTrue(referrals.attribute(300, 200))
        self.assertFalse(referrals.attribute(300, 201))
        self.assertTrue(await referrals.credit(300, 200))
        self.assertFalse(await referrals.credit(300, 200))

        referrer = self.core.ledger.get_user(200)
        self.assertEqual((referrer.diamonds, referrer.referrals), (1, 1))
        self.assertEqual(referrals.weekly_count(200), 1)
        self.assertEqual(self.core.ledger.get_user(300).referred_by, 200)


class TestGifts(BotTestCase):
    async def test_capacity_scenario(self):
        self.core.gifts.create('welcome10', 10, 2)
        for user_id in (10, 11):
            result = await self.core.redeem_gift(user_id, 'WELCOME10')
            self.assertTrue(result.ok)
            self.assertEqual(self.core.ledger.balance(user_id), 10)
        self.assertEqual(self.core.gifts.get('WELCOME10').used, 2)
        result = await self.core.redeem_gift(12, 'WELCOME10')
        self.assertEqual(result.reason, 'capacity_reached')

    async def test_redeem_once_per_user(self):
        self.core.gifts.create('FREE', 3)
        self.assertTrue((await self.core.redeem_gift(10, 'free')).ok)
        result = await self.core.redeem_gift(10, 'FREE')
        self.assertEqual(result.reason, 'already_redeemed')
        self.assertEqual(self.core.ledger.balance(10), 3)

    def test_duplicate_code(self):
        self.core.gifts.create('FREE', 3)
        with self.assertRaises(ValidationError) as ctx:
            self.core.gifts.create('free', 5)
        self.assertEqual(ctx.exception.reason, 'duplicate')


class TestMissions(BotTestCase):
    def create_question(self, period='weekly'):
        return self.core.missions.create('Capital', 4, period, 'question', {'question': 'Capital of France?',
                                                                             'answer': 'Paris'})

    async def test_weekly_mission_pays_once_per_week(self):
        mission = self.create_question()
        result = await self.core.submit_mission_answer(10, mission.id, 'London')
        self.assertEqual(result.reason, 'wrong_answer')
        result = await self.core.submit_mission_answer(10, mission.id, 'paris')
        self.assertEqual(result.reason, 'invalid_state')
        self.assertEqual(self.core.ledger.balance(10), 0)

        self.clock.advance(7 * DAY_MS)
        result = await self.core.submit_mission_answer(10, mission.id, ' Paris ')
        self.assertTrue(result.ok)
        result = await self.core.submit_mission_answer(10, mission.id, 'Paris')
        self.assertFalse(result.ok)
        self.assertEqual(self.core.ledger.balance(10), 4)
        self.assertEqual(self.core.missions.weekly_points(10), 4)

    async def test_quiz_by_option_index(self):
        mission = self.core.missions.create('Quiz', 2, 'daily', 'quiz',
                                            {'question': '2+2?', 'options': ['3', '4'], 'correct_index': 1})
        self.assertTrue((await self.core.submit_mission_answer(10, mission.id, '1')).ok)
        result = await self.core.submit_mission_answer(11, mission.id, '5')
        self.assertEqual(result.reason, 'invalid_input')

    def test_invalid_period_is_validation_error(self):
        with self.assertRaises(ValidationError):
            self.core.missions.create('x', 1, 'monthly')

    async def test_invite_mission(self):
        mission = self.core.missions.create('Invite', 3, 'weekly', 'invite', {'needed': 1})
        self.core.ledger.ensure_user(200)
        self.assertEqual(self.core.missions.check_invites(200), [])
        await self.core.referrals.credit(300, 200)
        self.assertEqual([m.id for m in self.core.missions.check_invites(200)], [mission.id])
        self.assertEqual(self.core.missions.check_invites(200), [])

    def test_weekly_checkin_cooldown(self):
        missions = self.core.missions
        self.assertTrue(missions.weekly_checkin(10).ok)
        self.clock.advance(7 * DAY_MS - 60 * 1000)
        result = missions.weekly_checkin(10)
        self.assertFalse(result.ok)
        self.assertEqual(format_duration(result.remaining_ms), "0 روز و 0 ساعت و 1 دقیقه و 0 ثانیه")
        self.clock.advance(60 * 1000)
        self.assertTrue(missions.weekly_checkin(10).ok)
        self.assertEqual(self.core.ledger.balance(10), 4)

    async def test_admin_create_mission(self):
        result = await self.core.admin_create_mission(ADMIN, {'title': 'Join', 'reward': '2', 'period': 'once'})
        self.assertTrue(result.ok)
        self.assertTrue(result.value.id.startswith('m_'))
        result = await self.core.admin_create_mission(10, {'title': 'Join', 'reward': 2})
        self.assertEqual(result.reason, 'permission_denied')


class TestLottery(BotTestCase):
    def test_enroll_twice(self):
        lottery = self.core.lottery
        lottery.toggle()
        self.assertTrue(lottery.enroll(10))
        self.assertFalse(lottery.enroll(10))
        self.assertEqual(lottery.pool(), [10])

    def test_draw_once_per_day(self):
        lottery = self.core.lottery
        lottery.toggle()
        lottery.configure(1, 5, 24)
        lottery.enroll(10)
        lottery.enroll(11)
        winners = lottery.draw(day_key(START))
        self.assertEqual(len(winners), 1)
        self.assertIsNone(lottery.draw(day_key(START)))
        self.assertEqual(self.core.ledger.balance(winners[0]), 5)
        self.assertEqual(lottery.history()[0]['winners'], winners)

    def test_disabled_lottery_does_not_draw(self):
        self.core.lottery.configure(1, 5, 24)
        self.core.lottery.enroll(10)
        self.assertIsNone(self.core.lottery.draw(day_key(START)))


class TestPurchasesAndTickets(BotTestCase):
    def test_purchase_approved_once(self):
        purchases = self.core.purchases
        purchase = purchases.create(10, 'd25')
        purchases.attach_receipt(purchase.id, 10, 'RECEIPT', True)
        with self.assertRaises(StateError):
            purchases.attach_receipt(purchase.id, 10, 'RECEIPT', True)
        purchases.approve(purchase.id, ADMIN)
        with self.assertRaises(StateError):
            purchases.approve(purchase.id, ADMIN)
        with self.assertRaises(StateError):
            purchases.reject(purchase.id, ADMIN)
        self.assertEqual(self.core.ledger.balance(10), 25)
        self.assertEqual(purchases.get(purchase.id).processed_by, ADMIN)

    def test_purchase_without_receipt_cannot_be_decided(self):
        purchases = self.core.purchases
        purchase = purchases.create(10, 'd25')
        with self.assertRaises(StateError):
            purchases.approve(purchase.id, ADMIN)
        with self.assertRaises(StateError):
            purchases.reject(purchase.id, ADMIN)
        self.assertEqual(purchases.get(purchase.id).status, 'awaiting_receipt')
        self.assertEqual(self.core.ledger.balance(10), 0)

    def test_ticket_log_is_capped(self):
        tickets = self.core.tickets
        ticket = tickets.create(10, 'فنی', 'It does not work')
        for i in range(250):
            tickets.append_message(ticket.id, 'user', 10, f"m{i}")
        messages = tickets.messages(ticket.id)
        self.assertEqual(len(messages), 200)
        self.assertEqual(messages[-1]['text'], 'm249')

    def test_closed_ticket_rejects_reply(self):
        tickets = self.core.tickets
        ticket = tickets.create(10, 'فنی', 'Help')
        tickets.toggle_status(ticket.id)
        with self.assertRaises(StateError):
            tickets.user_reply(ticket.id, 10, 'hello?')


class TestConversation(BotTestCase):
    def setUp(self):
        super().setUp()
        self.conversation = Conversation(self.core)

    async def send(self, user_id, text='', media=None):
        await self.conversation.handle(Event(user_id=user_id, chat_id=user_id, text=text, media=media))

    async def tap(self, user_id, data):
        await self.conversation.handle(Event(user_id=user_id, chat_id=user_id, callback_data=data))

    def last_text(self, user_id):
        return self.transport.texts_to(user_id)[-1]

    async def test_cancel_clears_pending(self):
        await self.tap(10, 'GET_BY_TOKEN')
        self.assertEqual(self.core.sessions.get(10).pending.kind, 'get_by_token')
        await self.send(10, '/cancel')
        self.assertIsNone(self.core.sessions.get(10).pending)
        self.assertEqual(self.last_text(10), MESSAGES['cancelled'])

    async def test_invalid_input_reprompts_in_place(self):
        await self.tap(10, 'GET_BY_TOKEN')
        await self.send(10, 'bad token!')
        self.assertEqual(self.last_text(10), ERROR_CODES['invalid_token'])
        self.assertEqual(self.core.sessions.get(10).pending.kind, 'get_by_token')

    async def test_token_flow_delivers(self):
        item = self.make_file()
        await self.tap(10, 'GET_BY_TOKEN')
        await self.send(10, item.token)
        self.assertEqual(self.transport.contents[-1], (10, 'document', 'FILE-1'))
        self.assertIsNone(self.core.sessions.get(10).pending)

    async def test_admin_flow_rechecked_after_demotion(self):
        self.core.ledger.add_admin(2)
        self.core.ledger.ensure_user(10)
        await self.tap(2, 'ADMIN:BROADCAST')
        self.assertEqual(self.core.sessions.get(2).pending.kind, 'broadcast')

        self.core.ledger.remove_admin(2)
        await self.send(2, 'hello everyone')
        self.assertEqual(self.transport.texts_to(10), [])
        self.assertIsNone(self.core.sessions.get(2).pending)
        self.assertEqual(self.last_text(2), ERROR_CODES['permission_denied'])

    async def test_non_admin_cannot_open_panel(self):
        await self.tap(10, 'ADMIN:PANEL')
        self.assertEqual(self.last_text(10), ERROR_CODES['permission_denied'])

    async def test_broadcast_reaches_users(self):
        for user_id in (10, 11):
            await self.send(user_id, '/start')
        await self.tap(ADMIN, 'ADMIN:BROADCAST')
        await self.send(ADMIN, 'news')
        self.assertEqual(self.transport.texts_to(10)[-1], 'news')
        self.assertEqual(self.transport.texts_to(11)[-1], 'news')

    async def test_deep_link_quote_and_confirm(self):
        item = self.make_file(cost=3)
        await self.send(100, f"/start d_{item.token}")
        self.assertIn(MESSAGES['quote'].format(cost=3, balance=0), self.last_text(100))
        pending = self.core.sessions.get(100).pending
        self.assertEqual((pending.kind, pending.target), ('confirm_spend', item.token))

        await self.tap(100, f"CONFIRM_SPEND:{item.token}")
        self.assertEqual(self.last_text(100), MESSAGES['insufficient_balance'].format(need=3, have=0))

        self.core.ledger.credit(100, 5)
        await self.send(100, f"/start d_{item.token}")
        await self.tap(100, f"CONFIRM_SPEND:{item.token}")
        self.assertEqual(self.core.ledger.balance(100), 2)
        self.assertEqual(self.transport.contents[-1], (100, 'document', 'FILE-1'))

    async def test_confirm_without_quote_is_refused(self):
        item = self.make_file(cost=3)
        self.core.ledger.credit(100, 5)
        await self.tap(100, f"CONFIRM_SPEND:{item.token}")
        self.assertEqual(self.core.ledger.balance(100), 5)
        self.assertEqual(self.transport.contents, [])

    async def test_join_interrupt_resumes_download(self):
        item = self.make_file()
        self.db.put('bot:join_channels', ['@news'])
        await self.send(100, f"/start d_{item.token}")
        self.assertEqual(self.core.sessions.get(100).pending_download['token'], item.token)
        self.assertEqual(self.transport.contents, [])

        self.transport.members['@news'] = {100}
        await self.tap(100, 'CHECK_JOIN')
        self.assertEqual(self.transport.contents[-1], (100, 'document', 'FILE-1'))
        self.assertTrue(self.core.ledger.get_user(100).joined)

    async def test_pending_input_requires_membership(self):
        await self.tap(100, 'GET_BY_TOKEN')
        self.db.put('bot:join_channels', ['@news'])
        item = self.make_file()
        await self.send(100, item.token)
        self.assertEqual(self.transport.contents, [])
        self.assertEqual(self.core.sessions.get(100).pending.kind, 'get_by_token')

        self.transport.members['@news'] = {100}
        await self.send(100, item.token)
        self.assertEqual(self.transport.contents[-1], (100, 'document', 'FILE-1'))

    async def test_start_referral_credited_once(self):
        await self.send(200, '/start')
        await self.send(300, '/start 200')
        await self.send(300, '/start 200')
        await self.tap(300, 'CHECK_JOIN')
        self.assertEqual(self.core.ledger.balance(200), 1)

    async def test_transfer_flow(self):
        self.core.ledger.credit(10, 20)
        await self.tap(10, 'BAL:START')
        await self.send(10, '11')
        await self.send(10, '1')
        self.assertEqual(self.core.sessions.get(10).pending.step, 'amount')
        await self.send(10, '5')
        await self.tap(10, 'BAL:CONFIRM')
        self.assertEqual(self.core.ledger.balance(10), 15)
        self.assertEqual(self.core.ledger.balance(11), 5)

    async def test_weekly_checkin_message(self):
        await self.tap(10, 'WEEKLY_CHECKIN')
        self.clock.advance(7 * DAY_MS - 60 * 1000)
        await self.tap(10, 'WEEKLY_CHECKIN')
        self.assertEqual(self.last_text(10), MESSAGES['checkin_wait'].format(
            remaining="0 روز و 0 ساعت و 1 دقیقه و 0 ثانیه"))

    async def test_lottery_enroll_twice(self):
        self.core.lottery.toggle()
        await self.tap(10, 'LOTTERY:ENROLL')
        await self.tap(10, 'LOTTERY:ENROLL')
        self.assertEqual(self.last_text(10), MESSAGES['lottery_already'])
        self.assertEqual(self.core.lottery.pool(), [10])

    async def test_disabled_button_refused_for_users(self):
        self.core.settings.toggle_button('LOTTERY')
        await self.tap(10, 'LOTTERY')
        self.assertEqual(self.last_text(10), MESSAGES['button_disabled'])

    async def test_blocked_user_gets_single_notice(self):
        self.core.security.block(10, by=ADMIN)
        await self.send(10, '/start')
        self.assertEqual(self.transport.texts_to(10), [MESSAGES['blocked']])

    async def test_admin_upload_and_rename(self):
        await self.send(ADMIN, media=Media('document', 'DOC-9', 'notes.txt', 10))
        token = self.core.files.list_tokens(ADMIN)[0]
        await self.tap(ADMIN, f"RENAME:{token}")
        await self.send(ADMIN, 'Notes')
        self.assertEqual(self.core.files.get(token).name, 'Notes')

        await self.tap(10, f"RENAME:{token}")
        self.assertEqual(self.last_text(10), ERROR_CODES['permission_denied'])

    async def test_gift_create_and_redeem(self):
        await self.tap(ADMIN, 'ADMIN:GIFT_CREATE')
        await self.send(ADMIN, 'SPRING 7 1')
        await self.tap(10, 'REDEEM_GIFT')
        await self.send(10, 'spring')
        self.assertEqual(self.last_text(10), MESSAGES['gift_redeemed'].format(amount=7))
        await self.tap(11, 'REDEEM_GIFT')
        await self.send(11, 'SPRING')
        self.assertEqual(self.last_text(11), ERROR_CODES['capacity_reached'])

    async def test_mission_creation_wizard(self):
        await self.tap(ADMIN, 'ADMIN:MIS:CREATE:QUESTION')
        await self.send(ADMIN, 'Capital')
        await self.send(ADMIN, 'zero')
        self.assertEqual(self.core.sessions.get(ADMIN).pending.step, 'reward')
        await self.send(ADMIN, '3')
        await self.send(ADMIN, 'Capital of France?')
        await self.send(ADMIN, 'Paris')
        await self.tap(ADMIN, 'ADMIN:MIS:PERIOD:daily')
        missions = self.core.missions.list()
        self.assertEqual(len(missions), 1)
        self.assertEqual((missions[0].type, missions[0].period, missions[0].config['answer']),
                         ('question', 'daily', 'Paris'))

        await self.tap(10, f"MIS:Q:{missions[0].id}")
        await self.send(10, 'paris')
        self.assertEqual(self.core.ledger.balance(10), 3)

    async def test_ticket_flow_and_admin_reply(self):
        await self.tap(10, 'TICKET:NEW')
        await self.tap(10, 'TKT:CAT:2')
        await self.send(10, 'App crashes')
        await self.tap(10, 'TKT:SUBMIT')
        ticket = self.core.tickets.list_user(10)[0]
        self.assertEqual(ticket.category, 'فنی')

        await self.tap(ADMIN, f"ATK:REPLY:{ticket.id}")
        await self.send(ADMIN, 'Fixed')
        self.assertEqual([m['from'] for m in self.core.tickets.messages(ticket.id)], ['user', 'admin'])

    async def test_purchase_receipt_and_approval(self):
        await self.tap(10, 'DPKG:d15')
        purchase_id = self.core.sessions.get(10).pending.target
        await self.send(10, 'no receipt')
        self.assertEqual(self.core.purchases.get(purchase_id).status, 'awaiting_receipt')
        await self.send(10, media=Media('photo', 'PHOTO-1'))
        self.assertEqual(self.core.purchases.get(purchase_id).status, 'pending_review')

        await self.tap(ADMIN, f"PAYAPP:{purchase_id}")
        await self.tap(ADMIN, f"PAYAPP:{purchase_id}")
        self.assertEqual(self.core.ledger.balance(10), 15)

    async def test_backup_snapshot(self):
        self.make_file()
        self.core.gifts.create('FREE', 1)
        await self.send(10, '/start')
        backup = create_backup(self.core)
        self.assertEqual(len(backup['files']), 1)
        self.assertEqual([g['code'] for g in backup['gifts']], ['FREE'])
        self.assertIn(10, [u['id'] for u in backup['users']])

        await self.tap(ADMIN, 'ADMIN:BACKUP')
        self.assertEqual(self.transport.documents[-1][0], ADMIN)


if __name__ == '__main__':
    unittest.main()
