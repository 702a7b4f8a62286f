import logging
from dataclasses import dataclass
from typing import List, Optional

from tgram import TgBot
from tgram.types import InputMediaPhoto

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    ok: bool
    message_id: Optional[int] = None
    error: Optional[str] = None


def _message_id(result) -> Optional[int]:
    if isinstance(result, list):
        result = result[0] if result else None
    return getattr(result, "id", None) or getattr(result, "message_id", None)


class Messenger:
    """Outbound delivery over tgram.

    Every method returns a Delivery instead of raising; failures are logged
    and left to the caller to retry or ignore.
    """

    def __init__(self, bot: TgBot):
        self.bot = bot

    async def _call(self, what: str, chat_id, coro) -> Delivery:
        try:
            result = await coro
        except Exception as e:
            logger.error(f"Failed to {what} to {chat_id}: {e}")
            return Delivery(ok=False, error=str(e))
        return Delivery(ok=True, message_id=_message_id(result))

    async def send_text(self, chat_id, text: str, reply_markup=None) -> Delivery:
        return await self._call(
            "send message",
            chat_id,
            self.bot.send_message(chat_id=int(chat_id), text=text, reply_markup=reply_markup),
        )

    async def send_photo(self, chat_id, photo: str, caption: str = None, reply_markup=None) -> Delivery:
        return await self._call(
            "send photo",
            chat_id,
            self.bot.send_photo(chat_id=int(chat_id), photo=photo, caption=caption, reply_markup=reply_markup),
        )

    async def send_photos(self, chat_id, photos: List[str], caption: str = None) -> Delivery:
        if len(photos) == 1:
            return await self.send_photo(chat_id, photos[0], caption=caption)
        media = [
            InputMediaPhoto(media=photo, caption=caption if i == 0 else None, parse_mode="HTML")
            for i, photo in enumerate(photos)
        ]
        return await self._call(
            "send media group",
            chat_id,
            self.bot.send_media_group(chat_id=int(chat_id), media=media),
        )

    async def edit_photo(
        self, chat_id, message_id: Optional[int], photo: str, caption: str = None, reply_markup=None
    ) -> Delivery:
        """Swap the photo card in place; if the old message is gone, send a new one."""
        if message_id is not None:
            delivery = await self._call(
                "edit media",
                chat_id,
                self.bot.edit_message_media(
                    media=InputMediaPhoto(media=photo, caption=caption, parse_mode="HTML"),
                    chat_id=int(chat_id),
                    message_id=message_id,
                    reply_markup=reply_markup,
                ),
            )
            if delivery.ok:
                return Delivery(ok=True, message_id=message_id)
            await self.delete(chat_id, message_id)
        return await self.send_photo(chat_id, photo, caption=caption, reply_markup=reply_markup)

    async def delete(self, chat_id, message_id: int) -> Delivery:
        return await self._call(
            "delete message",
            chat_id,
            self.bot.delete_message(chat_id=int(chat_id), message_id=message_id),
        )

    async def answer_callback(self, callback_id: str, text: str = None, show_alert: bool = False) -> Delivery:
        return await self._call(
            "answer callback",
            callback_id,
            self.bot.answer_callback_query(callback_query_id=callback_id, text=text, show_alert=show_alert),
        )

    async def set_webhook(self, url: str) -> bool:
        try:
            await self.bot.set_webhook(url=url)
        except Exception as e:
            logger.error(f"Failed to set webhook: {e}")
            return False
        logger.info("Webhook registered")
        return True

    async def get_username(self) -> Optional[str]:
        try:
            me = await self.bot.get_me()
        except Exception as e:
            logger.error(f"Failed to fetch bot info: {e}")
            return None
        return me.username
