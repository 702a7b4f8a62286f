from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union


@dataclass
class IncomingMessage:
    chat_id: str
    user_id: str
    message_id: Optional[int] = None
    text: Optional[str] = None
    photo_id: Optional[str] = None
    first_name: str = ""
    username: Optional[str] = None

    @property
    def command(self) -> Optional[Tuple[str, Optional[str]]]:
        """``("start", "abc123")`` for ``/start abc123``; None for plain text."""
        if not self.text or not self.text.startswith("/"):
            return None
        head, _, rest = self.text.strip().partition(" ")
        name = head[1:].split("@", 1)[0].lower()
        return name, (rest.strip() or None)


@dataclass
class IncomingCallback:
    id: str
    chat_id: str
    user_id: str
    data: Optional[str] = None
    message_id: Optional[int] = None


Incoming = Union[IncomingMessage, IncomingCallback]


def parse_update(payload: Dict[str, Any]) -> Optional[Incoming]:
    """Decode a raw Bot API update. Anything we do not handle yields None."""
    if not isinstance(payload, dict):
        return None

    message = payload.get("message")
    if isinstance(message, dict) and message.get("chat"):
        sender = message.get("from") or {}
        chat_id = str(message["chat"]["id"])
        photos = message.get("photo") or []
        return IncomingMessage(
            chat_id=chat_id,
            user_id=str(sender.get("id", chat_id)),
            message_id=message.get("message_id"),
            text=message.get("text") or message.get("caption"),
            photo_id=photos[-1]["file_id"] if photos else None,
            first_name=sender.get("first_name") or "",
            username=sender.get("username"),
        )

    query = payload.get("callback_query")
    if isinstance(query, dict) and query.get("from"):
        origin = query.get("message") or {}
        user_id = str(query["from"]["id"])
        chat = origin.get("chat") or {}
        return IncomingCallback(
            id=str(query.get("id")),
            chat_id=str(chat.get("id", user_id)),
            user_id=user_id,
            data=query.get("data"),
            message_id=origin.get("message_id"),
        )

    return None
