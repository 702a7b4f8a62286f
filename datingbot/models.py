import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

STARTING_COINS = 100
REFERRAL_BONUS = 25
REFERRER_REWARD = 50
LIKE_COST = 10
DAILY_BONUS = 25
BOOST_COST = 50
BOOST_HOURS = 24
VIEWERS_COST = 15
VIEWERS_SHOWN = 10
VIEWERS_CAP = 50
MIN_AGE = 18
MAX_AGE = 99
MAX_PHOTOS = 5

GENDERS = ("male", "female", "other")

ROLE_USER = "user"
ROLE_SUB_ADMIN = "sub-admin"
ROLE_ADMIN = "admin"

REPORT_OPEN = "open"
REPORT_CLOSED = "closed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def new_referral_code() -> str:
    return uuid.uuid4().hex[:8]


@dataclass
class Viewer:
    viewer_id: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {"viewerId": self.viewer_id, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Viewer":
        return cls(viewer_id=str(data.get("viewerId")), timestamp=data.get("timestamp") or "")


@dataclass
class User:
    id: str
    name: str = ""
    age: Optional[int] = None
    gender: str = ""
    city: str = ""
    interests: List[str] = field(default_factory=list)
    limits: str = ""
    extra_info: str = ""
    photos: List[str] = field(default_factory=list)
    coins: int = STARTING_COINS
    boost_until: Optional[str] = None
    last_daily: Optional[str] = None
    likes: List[str] = field(default_factory=list)
    matches: List[str] = field(default_factory=list)
    viewers: List[Viewer] = field(default_factory=list)
    banned: bool = False
    referral_code: str = ""
    referred_by: Optional[str] = None
    referral_paid: bool = False
    completed: bool = False
    created_at: str = ""

    def is_boosted(self, now: datetime) -> bool:
        until = parse_iso(self.boost_until)
        return bool(until and until > now)

    @property
    def display_name(self) -> str:
        return self.name or "Unknown User"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "gender": self.gender,
            "city": self.city,
            "interests": list(self.interests),
            "limits": self.limits,
            "extraInfo": self.extra_info,
            "photos": list(self.photos),
            "coins": self.coins,
            "boostUntil": self.boost_until,
            "lastDaily": self.last_daily,
            "likes": list(self.likes),
            "matches": list(self.matches),
            "viewers": [v.to_dict() for v in self.viewers],
            "banned": self.banned,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "referralPaid": self.referral_paid,
            "completed": self.completed,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        age = data.get("age")
        try:
            age = int(age) if age not in (None, "") else None
        except (TypeError, ValueError):
            age = None
        referred_by = data.get("referredBy")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            age=age,
            gender=data.get("gender") or "",
            city=data.get("city") or "",
            interests=list(data.get("interests") or []),
            limits=data.get("limits") or "",
            extra_info=data.get("extraInfo") or "",
            photos=list(data.get("photos") or []),
            coins=max(0, int(data.get("coins") or 0)),
            boost_until=data.get("boostUntil"),
            last_daily=data.get("lastDaily"),
            likes=[str(i) for i in data.get("likes") or []],
            matches=[str(i) for i in data.get("matches") or []],
            viewers=[Viewer.from_dict(v) for v in data.get("viewers") or []],
            banned=bool(data.get("banned", False)),
            referral_code=data.get("referralCode") or "",
            referred_by=str(referred_by) if referred_by is not None else None,
            referral_paid=bool(data.get("referralPaid", False)),
            completed=bool(data.get("completed", bool(data.get("name")))),
            created_at=data.get("createdAt") or "",
        )


@dataclass
class Match:
    id: str
    users: List[str]
    created_at: str

    @classmethod
    def create(cls, a: str, b: str, now: datetime) -> "Match":
        return cls(id=uuid.uuid4().hex, users=sorted([a, b]), created_at=to_iso(now))

    def pair(self) -> frozenset:
        return frozenset(self.users)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "users": list(self.users), "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Match":
        return cls(
            id=str(data["id"]),
            users=sorted(str(u) for u in data.get("users") or []),
            created_at=data.get("createdAt") or "",
        )


@dataclass
class Report:
    id: str
    reporter_id: str
    reported_id: str
    reason: str
    status: str = REPORT_OPEN
    created_at: str = ""

    @classmethod
    def create(cls, reporter_id: str, reported_id: str, reason: str, now: datetime) -> "Report":
        return cls(
            id=uuid.uuid4().hex[:8],
            reporter_id=reporter_id,
            reported_id=reported_id,
            reason=reason,
            created_at=to_iso(now),
        )

    @property
    def is_open(self) -> bool:
        return self.status == REPORT_OPEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reporterId": self.reporter_id,
            "reportedId": self.reported_id,
            "reason": self.reason,
            "status": self.status,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Report":
        return cls(
            id=str(data["id"]),
            reporter_id=str(data.get("reporterId")),
            reported_id=str(data.get("reportedId")),
            reason=data.get("reason") or "",
            status=data.get("status") or REPORT_OPEN,
            created_at=data.get("createdAt") or "",
        )


@dataclass
class Document:
    users: Dict[str, User] = field(default_factory=dict)
    matches: Dict[str, Match] = field(default_factory=dict)
    reports: List[Report] = field(default_factory=list)
    sub_admins: List[str] = field(default_factory=list)
    # set when the store could not be read; such a document is never saved
    degraded: bool = False

    def get_user(self, user_id) -> Optional[User]:
        return self.users.get(str(user_id))

    def find_by_referral(self, code: str) -> Optional[User]:
        return next((u for u in self.users.values() if u.referral_code == code), None)

    def find_match(self, a: str, b: str) -> Optional[Match]:
        pair = frozenset((a, b))
        return next((m for m in self.matches.values() if m.pair() == pair), None)

    def get_report(self, report_id: str) -> Optional[Report]:
        return next((r for r in self.reports if r.id == report_id), None)

    def unique_referral_code(self) -> str:
        taken = {u.referral_code for u in self.users.values()}
        code = new_referral_code()
        while code in taken:
            code = new_referral_code()
        return code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users": {uid: u.to_dict() for uid, u in self.users.items()},
            "matches": {mid: m.to_dict() for mid, m in self.matches.items()},
            "reports": [r.to_dict() for r in self.reports],
            "subAdmins": list(self.sub_admins),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Document":
        data = data or {}
        return cls(
            users={str(uid): User.from_dict({**u, "id": uid}) for uid, u in (data.get("users") or {}).items()},
            matches={str(mid): Match.from_dict({**m, "id": mid}) for mid, m in (data.get("matches") or {}).items()},
            reports=[Report.from_dict(r) for r in data.get("reports") or []],
            sub_admins=[str(i) for i in data.get("subAdmins") or []],
        )
