import logging
import sys

import uvicorn
from tgram import TgBot

from datingbot.bot import DatingBot
from datingbot.config import Settings
from datingbot.errors import ConfigError
from datingbot.messenger import Messenger
from datingbot.server import create_app
from datingbot.store import open_store

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def main():
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.critical(f"Configuration error: {e}")
        sys.exit(1)

    bot = TgBot(settings.token, parse_mode="HTML")
    dating_bot = DatingBot(settings, open_store(settings.db_path), Messenger(bot))
    app = create_app(dating_bot, settings)

    logger.info(f"Starting Dating Bot on port {settings.port}...")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
