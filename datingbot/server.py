import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from .bot import DatingBot
from .config import Settings

logger = logging.getLogger(__name__)

LIVENESS_TEXT = "Telegram Dating Bot is running!"
DRAIN_TIMEOUT = 5


async def consume(dating_bot: DatingBot, queue: asyncio.Queue) -> None:
    """Handle queued updates one at a time, in arrival order."""
    while True:
        payload = await queue.get()
        try:
            await dating_bot.process_update(payload)
        except Exception:
            logger.exception("Unhandled error while processing an update")
        finally:
            queue.task_done()


def create_app(dating_bot: DatingBot, settings: Settings, register_webhook: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if register_webhook:
            await dating_bot.startup()
        app.state.queue = asyncio.Queue()
        worker = asyncio.create_task(consume(dating_bot, app.state.queue))
        try:
            yield
        finally:
            # let queued updates finish before the worker goes away
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(app.state.queue.join(), timeout=DRAIN_TIMEOUT)
            worker.cancel()
            with suppress(asyncio.CancelledError):
                await worker

    app = FastAPI(title="Telegram Dating Bot", lifespan=lifespan)
    app.state.dating_bot = dating_bot

    @app.get("/", response_class=PlainTextResponse)
    def liveness():
        return LIVENESS_TEXT

    @app.post(settings.webhook_path)
    async def webhook(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            logger.warning("Ignoring a webhook call with an invalid JSON body")
            return {"ok": True}
        app.state.queue.put_nowait(payload)
        return {"ok": True}

    return app
