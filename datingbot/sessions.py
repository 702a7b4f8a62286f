from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union


class WizardStep(Enum):
    NAME = "name"
    AGE = "age"
    GENDER = "gender"
    CITY = "city"
    INTERESTS = "interests"
    PHOTO = "photo"

    def next(self) -> Optional["WizardStep"]:
        steps = list(WizardStep)
        index = steps.index(self)
        return steps[index + 1] if index + 1 < len(steps) else None


class SearchStep(Enum):
    GENDER = "gender"
    AGE_RANGE = "age_range"
    INTERESTS = "interests"


class GiftStep(Enum):
    RECIPIENT = "recipient"
    AMOUNT = "amount"
    CONFIRM = "confirm"


class AdminPrompt(Enum):
    LOOKUP_USER = "lookup_user"
    VIEW_USER = "view_user"
    GRANT_RECIPIENT = "grant_recipient"
    GRANT_AMOUNT = "grant_amount"
    BROADCAST = "broadcast"
    PROMOTE = "promote"
    DEMOTE = "demote"


@dataclass
class WizardSession:
    step: WizardStep = WizardStep.NAME


@dataclass
class EditFieldSession:
    field: str
    # photos collected so far when editing "photos"
    pending: List[str] = field(default_factory=list)


@dataclass
class SearchSession:
    step: SearchStep = SearchStep.GENDER
    gender: Optional[str] = None
    age_range: Optional[Tuple[int, int]] = None


@dataclass
class GiftSession:
    step: GiftStep = GiftStep.RECIPIENT
    recipient_id: Optional[str] = None
    amount: Optional[int] = None


@dataclass
class ReportSession:
    reported_id: str


@dataclass
class AdminSession:
    prompt: AdminPrompt
    target_id: Optional[str] = None


Session = Union[WizardSession, EditFieldSession, SearchSession, GiftSession, ReportSession, AdminSession]


class SessionRegistry:
    """In-memory per-user dialogue state. Lost on restart, never expires."""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def get(self, user_id) -> Optional[Session]:
        return self._sessions.get(str(user_id))

    def set(self, user_id, session: Session) -> None:
        self._sessions[str(user_id)] = session

    def clear(self, user_id) -> Optional[Session]:
        return self._sessions.pop(str(user_id), None)
