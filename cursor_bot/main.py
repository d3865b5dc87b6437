import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import uvicorn
from fastapi import FastAPI
from telegram.ext import Application

from cursor_bot.api import health, tasks
from cursor_bot.bot.handlers import CursorBot
from cursor_bot.core.config import settings
from cursor_bot.core.database import engine, init_db
from cursor_bot.services.image_cache import ImageCache, sweep_loop
from cursor_bot.services.integrations.cursor import CursorService
from cursor_bot.services.llm import get_llm_provider
from cursor_bot.services.monitor import TaskMonitor, monitor_loop
from cursor_bot.services.store import Store
from cursor_bot.services.voice import get_stt_provider

logger = logging.getLogger(__name__)


@dataclass
class Services:
    application: Application
    background: list[asyncio.Task] = field(default_factory=list)


async def start_services() -> Services:
    """Open the database, start Telegram polling and the background loops."""
    missing = settings.missing_credentials()
    if missing:
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")

    init_db()
    store = Store(engine)
    cursor = CursorService()
    image_cache = ImageCache.for_db_path(settings.db_path, ttl=settings.image_cache_ttl)

    bot = CursorBot(
        store=store,
        cursor=cursor,
        image_cache=image_cache,
        provider=get_llm_provider(),
        stt=get_stt_provider(),
    )
    application = bot.build_application()
    await application.initialize()
    await application.start()
    await application.updater.start_polling(drop_pending_updates=True)
    logger.info(f"Telegram bot @{application.bot.username} polling")

    monitor = TaskMonitor(store, cursor, bot.notify)
    background = [
        asyncio.create_task(monitor_loop(monitor, settings.monitor_interval)),
        asyncio.create_task(sweep_loop(image_cache, settings.sweep_interval)),
    ]
    return Services(application=application, background=background)


async def stop_services(services: Services) -> None:
    for task in services.background:
        task.cancel()
    for task in services.background:
        try:
            await task
        except asyncio.CancelledError:
            pass

    application = services.application
    if application.updater and application.updater.running:
        await application.updater.stop()
    if application.running:
        await application.stop()
    await application.shutdown()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )
    # httpx logs every request URL, which includes the bot token
    logging.getLogger("httpx").setLevel(logging.WARNING)

    services = await start_services()

    yield

    await stop_services(services)


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])


def run() -> None:
    uvicorn.run("cursor_bot.main:app", host=settings.host, port=settings.port)
