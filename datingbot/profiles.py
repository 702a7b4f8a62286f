import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import NotFoundError, ValidationError
from .models import (
    GENDERS,
    MAX_AGE,
    MAX_PHOTOS,
    MIN_AGE,
    REFERRAL_BONUS,
    STARTING_COINS,
    Document,
    User,
    to_iso,
)

logger = logging.getLogger(__name__)

ALBUM_ACTIONS = "👆 Profile options:"

# document key -> User attribute
FIELDS: Dict[str, str] = {
    "name": "name",
    "age": "age",
    "gender": "gender",
    "city": "city",
    "interests": "interests",
    "limits": "limits",
    "extraInfo": "extra_info",
    "photos": "photos",
}


@dataclass
class ShellResult:
    user: User
    created: bool
    bonus: int = 0


@dataclass
class ProfileView:
    text: str
    photos: List[str]


def split_interests(raw: str) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def coerce_field(field: str, raw: Any) -> Any:
    """Validate and convert raw input for a profile field.

    Raises ValidationError with a corrective prompt; never touches state.
    """
    if field not in FIELDS:
        raise ValidationError(f"Unknown profile field: {field}")

    if field == "age":
        try:
            age = int(str(raw).strip())
        except (TypeError, ValueError):
            raise ValidationError(f"❌ Please send your age as a number between {MIN_AGE} and {MAX_AGE}.")
        if not MIN_AGE <= age <= MAX_AGE:
            raise ValidationError(f"❌ Age must be between {MIN_AGE} and {MAX_AGE}.")
        return age

    if field == "interests":
        interests = split_interests(raw if isinstance(raw, str) else ",".join(raw or []))
        if not interests:
            raise ValidationError("❌ Please list at least one interest, separated by commas.")
        return interests

    if field == "gender":
        gender = str(raw or "").strip().lower()
        if gender not in GENDERS:
            raise ValidationError("❌ Please choose your gender using the buttons.")
        return gender

    if field == "photos":
        photos = [p for p in (raw or []) if p]
        if not photos:
            raise ValidationError("❌ Please send at least one photo.")
        return photos[:MAX_PHOTOS]

    text = "" if raw is None else str(raw).strip()
    if field in ("name", "city") and not text:
        raise ValidationError(f"❌ Your {field} can't be empty. Please try again.")
    return text


class ProfileManager:
    def __init__(self, bot):
        self.bot = bot

    def create_shell_in(self, doc: Document, user_id: str, referral_code: Optional[str] = None) -> ShellResult:
        existing = doc.get_user(user_id)
        if existing:
            return ShellResult(user=existing, created=False)

        referrer = doc.find_by_referral(referral_code) if referral_code else None
        if referrer and referrer.id == str(user_id):
            referrer = None
        bonus = REFERRAL_BONUS if referrer else 0

        user = User(
            id=str(user_id),
            coins=STARTING_COINS + bonus,
            referral_code=doc.unique_referral_code(),
            referred_by=referrer.id if referrer else None,
            created_at=to_iso(self.bot.now()),
        )
        doc.users[user.id] = user
        logger.info(f"Created shell profile for {user.id} (referrer: {user.referred_by})")
        return ShellResult(user=user, created=True, bonus=bonus)

    async def create_shell(self, user_id, referral_code: Optional[str] = None) -> ShellResult:
        async with self.bot.store.transaction(user_id) as doc:
            return self.create_shell_in(doc, str(user_id), referral_code)

    async def apply_field(self, user_id, field: str, raw_value: Any) -> User:
        value = coerce_field(field, raw_value)
        async with self.bot.store.transaction(user_id) as doc:
            user = doc.get_user(user_id)
            if not user:
                raise NotFoundError("Please create a profile first.")
            setattr(user, FIELDS[field], value)
            return user

    def render(self, user: Optional[User], extended: bool = False, for_moderator: bool = False) -> ProfileView:
        if not user:
            return ProfileView(text="Profile not found.", photos=[])

        e = html.escape
        text = f"👤 <b>Name:</b> {e(user.name or 'N/A')}\n"
        text += f"🎂 <b>Age:</b> {user.age or 'N/A'}\n"
        text += f"⚧️ <b>Gender:</b> {e(user.gender or 'N/A')}\n"
        text += f"🏙️ <b>City:</b> {e(user.city or 'N/A')}\n"
        text += f"🎨 <b>Interests:</b> {e(', '.join(user.interests) or 'N/A')}\n"
        if extended:
            text += f"📝 <b>Limits:</b> {e(user.limits or 'Not set')}\n"
            text += f"ℹ️ <b>Extra Info:</b> {e(user.extra_info or 'Not set')}\n"
            text += f"\n💰 <b>Coins:</b> {user.coins}\n"
            if user.is_boosted(self.bot.now()):
                text += "🚀 <b>Profile Boosted!</b>\n"
        if for_moderator:
            text += "\n--- Admin Info ---\n"
            text += f"<b>User ID:</b> <code>{user.id}</code>\n"
            text += f"<b>Banned:</b> {'Yes' if user.banned else 'No'}\n"
            referred = f"<code>{user.referred_by}</code>" if user.referred_by else "None"
            text += f"<b>Referred By:</b> {referred}\n"
        return ProfileView(text=text, photos=list(user.photos))

    async def show(self, chat_id, user: User, extended: bool = False, for_moderator: bool = False, reply_markup=None):
        """Send a rendered profile.

        Several photos go out as an album; albums cannot carry buttons, so
        any keyboard follows in its own message.
        """
        view = self.render(user, extended=extended, for_moderator=for_moderator)
        if len(view.photos) > 1:
            delivery = await self.bot.messenger.send_photos(chat_id, view.photos, caption=view.text)
            if reply_markup is None:
                return delivery
            return await self.bot.messenger.send_text(chat_id, ALBUM_ACTIONS, reply_markup=reply_markup)
        if view.photos:
            return await self.bot.messenger.send_photo(chat_id, view.photos[0], caption=view.text, reply_markup=reply_markup)
        return await self.bot.messenger.send_text(chat_id, view.text, reply_markup=reply_markup)
