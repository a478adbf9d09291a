from __future__ import annotations

from telegram import BotCommand
from telegram.ext import Application, CallbackQueryHandler, CommandHandler
from telegram.request import HTTPXRequest

from .config import Config, logger
from .http import make_session
from .notifications import TelegramDispatcher
from .price import PriceOracle
from .snapshots import SnapshotCache
from .state import TenantRegistry
from .storage import load_tenant_settings, save_tenant_settings
from .watchers import PollScheduler
from .commands import (
    start_cmd,
    lb_cmd,
    lb_page_callback,
    alert_cmd,
    watch_cmd,
    config_cmd,
    autorefresh_cmd,
)


BOT_COMMANDS = [
    BotCommand("start", "Show help and available commands"),
    BotCommand("lb", "Lobby leaderboard"),
    BotCommand("alert", "Configure join alerts"),
    BotCommand("watch", "Configure player-count watches"),
    BotCommand("config", "Show or change chat settings"),
    BotCommand("autorefresh", "Auto-post a lobby overview"),
]


def build_application(token: str, tenants: TenantRegistry) -> Application:
    # Configure request with longer timeout to prevent startup failures
    request = HTTPXRequest(
        connection_pool_size=8,
        connect_timeout=30.0,
        read_timeout=30.0,
        write_timeout=30.0,
        pool_timeout=30.0,
    )

    app = Application.builder().token(token).request(request).build()

    async def post_init(application: Application) -> None:
        session = make_session()
        oracle = PriceOracle(session)
        cache = SnapshotCache(session, oracle)
        scheduler = PollScheduler(
            cache,
            oracle,
            tenants,
            dispatcher=TelegramDispatcher(application.bot),
            persist=lambda: save_tenant_settings(tenants),
        )
        application.bot_data["session"] = session
        application.bot_data["scheduler"] = scheduler

        try:
            logger.info("🔧 Setting up bot commands...")
            await application.bot.set_my_commands(BOT_COMMANDS)
            logger.info("✅ Bot commands configured successfully")
        except Exception as e:
            logger.error(f"❌ Failed to set bot commands: {e}")
            logger.warning("⚠️ Bot will continue but commands may not be visible in Telegram")

        scheduler.start()

    async def post_shutdown(application: Application) -> None:
        scheduler = application.bot_data.get("scheduler")
        if scheduler is not None:
            await scheduler.stop()
            scheduler.save()
        session = application.bot_data.get("session")
        if session is not None:
            await session.close()

    app.post_init = post_init
    app.post_shutdown = post_shutdown

    app.add_handler(CommandHandler("start", start_cmd))
    app.add_handler(CommandHandler("help", start_cmd))
    app.add_handler(CommandHandler("lb", lb_cmd))
    app.add_handler(CommandHandler("alert", alert_cmd))
    app.add_handler(CommandHandler("watch", watch_cmd))
    app.add_handler(CommandHandler("config", config_cmd))
    app.add_handler(CommandHandler("autorefresh", autorefresh_cmd))
    app.add_handler(CallbackQueryHandler(lb_page_callback, pattern=r"^lb\|"))
    return app


def main():
    try:
        Config.validate_config()
    except ValueError as e:
        raise SystemExit(f"❌ {e}. Check your .env file.")

    tenants = TenantRegistry()
    load_tenant_settings(tenants)

    app = build_application(Config.BOT_TOKEN, tenants)
    app.run_polling(drop_pending_updates=True)
