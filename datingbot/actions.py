from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type


class Menu(Enum):
    """Reply-keyboard labels. The visible text is the payload."""

    MY_PROFILE = "✨ My Profile"
    SEARCH = "🔍 Search"
    MATCHES = "❤️ My Matches"
    COIN_STORE = "💰 Coin Store"
    REFERRAL = "📢 Get Referral Link"
    CREATE_PROFILE = "🚀 Create Profile"
    ADMIN_PANEL = "👑 Admin Panel"
    SUB_ADMIN_PANEL = "🛡️ Sub-Admin Panel"
    BACK = "⬅️ Back to Main Menu"
    STATS = "📊 Server Stats"
    MANAGE_USERS = "👥 Manage Users"
    LIST_USERS = "📋 List Users"
    MANAGE_REPORTS = "🚨 Manage Reports"
    MANAGE_SUB_ADMINS = "🛡️ Manage Sub-Admins"
    GRANT_COINS = "🎁 Grant Coins"
    BROADCAST = "📢 Broadcast"
    VIEW_USERS = "👥 View Users"


def decode_menu(text: Optional[str]) -> Optional[Menu]:
    if not text:
        return None
    try:
        return Menu(text.strip())
    except ValueError:
        return None


class ProfileOp(Enum):
    EDIT = "edit"
    VIEWERS = "viewers"
    VIEW = "view"


class EditOp(Enum):
    NAME = "name"
    AGE = "age"
    GENDER = "gender"
    CITY = "city"
    INTERESTS = "interests"
    LIMITS = "limits"
    EXTRA_INFO = "extraInfo"
    PHOTOS = "photos"
    DONE = "done"


class GenderOp(Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class AgeBucket(Enum):
    YOUNG = "18-25"
    ADULT = "26-35"
    MIDDLE = "36-45"
    SENIOR = "46-99"

    @property
    def bounds(self) -> Tuple[int, int]:
        low, high = self.value.split("-")
        return int(low), int(high)


class SearchOp(Enum):
    SKIP_INTERESTS = "skip"


class BrowseOp(Enum):
    PREV = "prev"
    NEXT = "next"


class LikeOp(Enum):
    SEND = "send"


class ReportOp(Enum):
    FILE = "file"


class StoreOp(Enum):
    DAILY = "daily"
    BOOST = "boost"
    VIEWERS = "viewers"
    GIFT = "gift"


class GiftOp(Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"


class AdminOp(Enum):
    USERS = "users"
    USER = "user"
    BAN = "ban"
    UNBAN = "unban"
    GRANT = "grant"
    PROMOTE = "promote"
    DEMOTE = "demote"
    REPORTS = "reports"
    REPORT = "report"
    RESOLVE = "resolve"


class NoopOp(Enum):
    NOOP = "noop"


ROUTERS: Dict[str, Type[Enum]] = {
    "profile": ProfileOp,
    "edit": EditOp,
    "gender": GenderOp,
    "age": AgeBucket,
    "search": SearchOp,
    "browse": BrowseOp,
    "like": LikeOp,
    "report": ReportOp,
    "store": StoreOp,
    "gift": GiftOp,
    "admin": AdminOp,
    "noop": NoopOp,
}

_ROUTER_NAMES = {op_type: name for name, op_type in ROUTERS.items()}


@dataclass(frozen=True)
class Action:
    op: Enum
    arg: Optional[str] = None

    @property
    def router(self) -> str:
        return _ROUTER_NAMES[type(self.op)]

    def encode(self) -> str:
        parts = [self.router, self.op.value]
        if self.arg is not None:
            parts.append(str(self.arg))
        return ":".join(parts)


def callback(op: Enum, arg=None) -> str:
    return Action(op, None if arg is None else str(arg)).encode()


def decode_callback(data: Optional[str]) -> Optional[Action]:
    """Turn an inline-button payload into an Action, or None if unknown."""
    if not data:
        return None
    parts = data.split(":", 2)
    op_type = ROUTERS.get(parts[0])
    if op_type is None or len(parts) < 2:
        return None
    try:
        op = op_type(parts[1])
    except ValueError:
        return None
    arg = parts[2] if len(parts) > 2 and parts[2] != "" else None
    return Action(op, arg)
