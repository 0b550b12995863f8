import asyncio
import json
import logging
import os
from datetime import datetime, timedelta

import pytz
from telegram import Bot

from advanced_config import CLEANUP_SETTINGS, PATH_SETTINGS
from config import BOT_TOKEN, DATABASE_URL, MESSAGES
from core import BotCore
from database import Database
from transport import TelegramTransport
from utils import DAY_MS, day_key, now_ms

logger = logging.getLogger(__name__)


def backup_filename(ts: int) -> str:
    return f"backup_{datetime.fromtimestamp(ts / 1000, pytz.utc).strftime('%Y%m%d_%H%M%S')}.json"


def create_backup(core) -> dict:
    """Read-only snapshot of every record needed to rebuild the bot"""
    db = core.db
    user_ids = core.ledger.user_ids()
    users, files = [], []
    for user_id in user_ids:
        user = core.ledger.get_user(user_id)
        if user:
            users.append(user.to_dict())
        for token in core.files.list_tokens(user_id):
            item = core.files.get(token)
            if item:
                files.append(item.to_dict())
    # Admins upload too and are not always in the user index
    for admin_id in core.ledger.admin_ids():
        if admin_id in user_ids:
            continue
        for token in core.files.list_tokens(admin_id):
            item = core.files.get(token)
            if item:
                files.append(item.to_dict())

    tickets = []
    for ticket in core.tickets.list_all(limit=None):
        data = ticket.to_dict()
        data['messages'] = core.tickets.messages(ticket.id)
        tickets.append(data)

    return {
        'created_at': core.clock(),
        'admins': core.ledger.admin_ids(),
        'settings': core.settings.get(),
        'enabled': core.settings.is_enabled(),
        'update_mode': core.settings.is_update_mode(),
        'join_channels': core.security.required_channels(),
        'users': users,
        'files': files,
        'missions': [m.to_dict() for m in core.missions.list()],
        'gifts': [g.to_dict() for g in core.gifts.list()],
        'lottery': core.lottery.config().to_dict(),
        'purchases': [p.to_dict() for p in core.purchases.recent(limit=None)],
        'tickets': tickets,
        'last_webhook': db.get('bot:last_webhook'),
    }


def save_backup(backup: dict, filename: str) -> str:
    backup_dir = PATH_SETTINGS['backup_dir']
    os.makedirs(backup_dir, exist_ok=True)
    path = os.path.join(backup_dir, filename)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(backup, f, ensure_ascii=False, indent=2)
    return path


def cleanup_old_backups():
    """Clean up old backups"""
    backup_dir = PATH_SETTINGS['backup_dir']
    if not os.path.isdir(backup_dir):
        return
    threshold = (datetime.now() - timedelta(days=CLEANUP_SETTINGS["old_backups_days"])).timestamp()
    for file in os.listdir(backup_dir):
        file_path = os.path.join(backup_dir, file)
        if os.path.getctime(file_path) < threshold:
            os.remove(file_path)
            logger.info(f"Removed old backup: {file}")


async def run_daily_tasks(core):
    """Draw yesterday's lottery and send a fresh backup to the main admin"""
    yesterday = day_key(core.clock() - DAY_MS)
    winners = core.lottery.draw(yesterday)
    if winners:
        reward = core.lottery.config().reward_diamonds
        for winner in winners:
            await core.transport.send_message(winner, MESSAGES['lottery_won'].format(reward=reward))
    logger.info(f"Daily lottery for {yesterday}: {len(winners or [])} winners")

    backup = create_backup(core)
    filename = backup_filename(core.clock())
    admin_ids = core.ledger.admin_ids()
    if admin_ids:
        data = json.dumps(backup, ensure_ascii=False, indent=2).encode('utf-8')
        sent = await core.transport.upload_document(admin_ids[0], data, filename, caption="🗄 پشتیبان روزانه")
        if not sent:
            logger.warning(f"Could not send backup to main admin {admin_ids[0]}")
    return winners, backup


async def _run():
    bot = Bot(BOT_TOKEN)
    async with bot:
        core = BotCore(Database(DATABASE_URL), TelegramTransport(bot), clock=now_ms)
        _, backup = await run_daily_tasks(core)
        path = save_backup(backup, backup_filename(core.clock()))
        logger.info(f"Backup written to {path}")


def main():
    """Run maintenance tasks"""
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=logging.INFO
    )
    try:
        logger.info("Starting maintenance tasks...")
        asyncio.run(_run())
        cleanup_old_backups()
        logger.info("Maintenance tasks completed successfully!")
    except Exception as e:
        logger.error(f"Error during maintenance: {e}")
        raise


if __name__ == "__main__":
    main()
