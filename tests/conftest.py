from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from datingbot.bot import DatingBot
from datingbot.config import Settings
from datingbot.messenger import Delivery
from datingbot.models import User
from datingbot.store import DocumentStore

ADMIN_ID = "1000"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class MemoryKV:
    """Same get/set surface as kvsqlite.Client, kept in a dict."""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        return True


@dataclass
class Sent:
    method: str
    chat_id: str
    text: Optional[str]
    kwargs: Dict[str, Any] = field(default_factory=dict)


class FakeMessenger:
    def __init__(self):
        self.sent: List[Sent] = []
        self.fail_for = set()
        self.webhook_url = None
        self._next_id = 0

    def _record(self, method, chat_id, text=None, **kwargs) -> Delivery:
        self.sent.append(Sent(method, str(chat_id), text, kwargs))
        if str(chat_id) in self.fail_for:
            return Delivery(ok=False, error="Forbidden: bot was blocked by the user")
        self._next_id += 1
        return Delivery(ok=True, message_id=self._next_id)

    async def send_text(self, chat_id, text, reply_markup=None):
        return self._record("send_text", chat_id, text, reply_markup=reply_markup)

    async def send_photo(self, chat_id, photo, caption=None, reply_markup=None):
        return self._record("send_photo", chat_id, caption, photo=photo, reply_markup=reply_markup)

    async def send_photos(self, chat_id, photos, caption=None):
        return self._record("send_photos", chat_id, caption, photos=photos)

    async def edit_photo(self, chat_id, message_id, photo, caption=None, reply_markup=None):
        return self._record("edit_photo", chat_id, caption, message_id=message_id, photo=photo, reply_markup=reply_markup)

    async def delete(self, chat_id, message_id):
        return self._record("delete", chat_id, message_id=message_id)

    async def answer_callback(self, callback_id, text=None, show_alert=False):
        return self._record("answer_callback", callback_id, text, show_alert=show_alert)

    async def set_webhook(self, url):
        self.webhook_url = url
        return True

    async def get_username(self):
        return "test_dating_bot"

    def texts(self, chat_id) -> List[str]:
        return [s.text for s in self.sent if s.chat_id == str(chat_id) and s.text and s.method != "answer_callback"]

    def last_text(self, chat_id) -> Optional[str]:
        texts = self.texts(chat_id)
        return texts[-1] if texts else None

    def answers(self) -> List[Sent]:
        return [s for s in self.sent if s.method == "answer_callback"]

    def clear(self):
        self.sent.clear()


class FrozenClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings():
    return Settings(
        token="123456:TEST",
        base_url="https://dating.example.com",
        port=8080,
        admin_id=ADMIN_ID,
        db_path="unused.db",
        broadcast_delay=0,
    )


@pytest.fixture
def kv():
    return MemoryKV()


@pytest.fixture
def store(kv):
    return DocumentStore(kv)


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def bot(settings, store, messenger, clock):
    return DatingBot(settings, store, messenger, clock=clock)


@pytest.fixture
def add_user(store):
    async def add(user_id, **fields) -> User:
        user = User(
            id=str(user_id),
            name=f"User {user_id}",
            age=25,
            gender="female",
            city="Paris",
            interests=["music", "travel"],
            photos=[f"photo-{user_id}"],
            referral_code=f"ref{user_id}",
            completed=True,
        )
        for name, value in fields.items():
            setattr(user, name, value)
        async with store.transaction(user.id) as doc:
            doc.users[user.id] = user
        return user

    return add


@pytest.fixture
def send(bot):
    """Feed a text or photo message through the bot."""

    async def send_message(user_id, text=None, photo=None):
        message = {
            "message_id": 1,
            "chat": {"id": int(user_id), "type": "private"},
            "from": {"id": int(user_id), "first_name": f"User {user_id}"},
        }
        if text is not None:
            message["text"] = text
        if photo is not None:
            message["photo"] = [{"file_id": f"{photo}-small"}, {"file_id": photo}]
        await bot.process_update({"update_id": 1, "message": message})

    return send_message


@pytest.fixture
def press(bot):
    """Feed an inline-button press through the bot."""

    async def press_button(user_id, data, message_id=50):
        await bot.process_update(
            {
                "update_id": 2,
                "callback_query": {
                    "id": f"cb-{user_id}",
                    "from": {"id": int(user_id), "first_name": f"User {user_id}"},
                    "message": {"message_id": message_id, "chat": {"id": int(user_id), "type": "private"}},
                    "data": data,
                },
            }
        )

    return press_button
