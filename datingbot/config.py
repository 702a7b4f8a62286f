import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

REQUIRED_VARS = ("TELEGRAM_TOKEN", "RENDER_EXTERNAL_URL", "PORT", "ADMIN_CHAT_ID")

DEFAULT_DB_PATH = "data/dating_bot.db"
DEFAULT_BROADCAST_DELAY = 0.05


@dataclass(frozen=True)
class Settings:
    token: str
    base_url: str
    port: int
    admin_id: str
    db_path: str = DEFAULT_DB_PATH
    broadcast_delay: float = DEFAULT_BROADCAST_DELAY

    @property
    def webhook_path(self) -> str:
        return f"/bot{self.token}"

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url}{self.webhook_path}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the environment (and a .env file when present).

        Raises ConfigError naming every missing variable so startup can abort.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        missing = [name for name in REQUIRED_VARS if not environ.get(name)]
        if missing:
            raise ConfigError(f"{', '.join(missing)} must be set.")

        try:
            port = int(environ["PORT"])
        except ValueError:
            raise ConfigError(f"PORT must be an integer, got {environ['PORT']!r}")

        try:
            delay = float(environ.get("BROADCAST_DELAY", DEFAULT_BROADCAST_DELAY))
        except ValueError:
            raise ConfigError("BROADCAST_DELAY must be a number")

        return cls(
            token=environ["TELEGRAM_TOKEN"],
            base_url=environ["RENDER_EXTERNAL_URL"].rstrip("/"),
            port=port,
            admin_id=str(environ["ADMIN_CHAT_ID"]).strip(),
            db_path=environ.get("DB_PATH") or DEFAULT_DB_PATH,
            broadcast_delay=delay,
        )
