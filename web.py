"""aiohttp server for webhook mode"""
import html
import logging

from aiohttp import web
from telegram import Update

from config import WEBHOOK_HOST, WEBHOOK_PORT, WEBHOOK_SECRET, WEBHOOK_URL
from utils import is_valid_token

logger = logging.getLogger(__name__)

SECRET_HEADER = 'X-Telegram-Bot-Api-Secret-Token'

FILE_PAGE = """<!doctype html>
<html lang="fa" dir="rtl">
<head>
<meta charset="utf-8">
<meta http-equiv="refresh" content="0; url={link}">
<title>دریافت فایل</title>
</head>
<body>
<p>در حال انتقال به ربات... اگر منتقل نشدید <a href="{link}">اینجا</a> را بزنید.</p>
</body>
</html>
"""


async def handle_webhook(request: web.Request) -> web.Response:
    if WEBHOOK_SECRET and request.headers.get(SECRET_HEADER) != WEBHOOK_SECRET:
        return web.Response(status=403, text='forbidden')
    try:
        data = await request.json()
    except ValueError:
        return web.Response(status=400, text='invalid json')
    application = request.app['file_bot'].application
    update = Update.de_json(data, application.bot)
    await application.process_update(update)
    return web.Response(text='ok')


async def handle_health(request: web.Request) -> web.Response:
    db = request.app['file_bot'].db
    return web.json_response({'status': 'ok', 'last_update': db.get('bot:last_webhook')})


async def handle_file_link(request: web.Request) -> web.Response:
    """Landing page for shared file links; forwards to the bot deep link"""
    token = request.match_info['token']
    if not is_valid_token(token):
        return web.Response(status=404, text='not found')
    username = await request.app['file_bot'].transport.get_username()
    if not username:
        return web.Response(status=503, text='bot unavailable')
    link = html.escape(f"https://t.me/{username}?start=d_{token}")
    return web.Response(text=FILE_PAGE.format(link=link), content_type='text/html')


async def on_startup(app: web.Application):
    file_bot = app['file_bot']
    application = file_bot.application
    await application.initialize()
    await application.start()
    await file_bot.initialize(application)
    kwargs = {'secret_token': WEBHOOK_SECRET} if WEBHOOK_SECRET else {}
    await application.bot.set_webhook(WEBHOOK_URL, allowed_updates=Update.ALL_TYPES, **kwargs)
    logger.info(f"Webhook set to {WEBHOOK_URL}")


async def on_cleanup(app: web.Application):
    file_bot = app['file_bot']
    await file_bot.shutdown(file_bot.application)
    await file_bot.application.stop()
    await file_bot.application.shutdown()


def create_app(file_bot, manage_lifecycle: bool = True) -> web.Application:
    app = web.Application()
    app['file_bot'] = file_bot
    app.router.add_post('/webhook', handle_webhook)
    app.router.add_get('/health', handle_health)
    app.router.add_get('/f/{token}', handle_file_link)
    if manage_lifecycle:
        app.on_startup.append(on_startup)
        app.on_cleanup.append(on_cleanup)
    return app


def run_webhook(file_bot):
    web.run_app(create_app(file_bot), host=WEBHOOK_HOST, port=WEBHOOK_PORT)
