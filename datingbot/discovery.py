import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from . import keyboards
from .actions import AgeBucket, BrowseOp, GenderOp
from .models import VIEWERS_CAP, Document, User, Viewer, to_iso
from .profiles import split_interests
from .sessions import SearchSession, SearchStep
from .updates import IncomingMessage

logger = logging.getLogger(__name__)

NO_RESULTS = "😔 No profiles match your search. Try different criteria!"
FIRST_PROFILE = "⛔ This is the first profile."
LAST_PROFILE = "⛔ You've reached the last profile."


@dataclass
class SearchCriteria:
    gender: str
    age_range: Tuple[int, int]
    interests: List[str] = field(default_factory=list)


@dataclass
class SearchResults:
    candidate_ids: List[str]
    cursor: int = 0
    message_id: Optional[int] = None

    @property
    def current(self) -> Optional[str]:
        if not self.candidate_ids:
            return None
        return self.candidate_ids[self.cursor]


def matches_criteria(user: User, criteria: SearchCriteria) -> bool:
    if user.gender != criteria.gender:
        return False
    low, high = criteria.age_range
    if user.age is None or not low <= user.age <= high:
        return False
    if criteria.interests:
        wanted = {i.lower() for i in criteria.interests}
        if not wanted & {i.strip().lower() for i in user.interests}:
            return False
    return True


def execute_search(doc: Document, searcher_id: str, criteria: SearchCriteria, now: datetime) -> List[str]:
    """Candidate ids, boosted-and-active profiles first; otherwise document order."""
    candidates = [
        user
        for uid, user in doc.users.items()
        if uid != str(searcher_id) and user.completed and not user.banned and matches_criteria(user, criteria)
    ]
    # sorted() is stable, so ties keep their original relative order
    ranked = sorted(candidates, key=lambda u: 0 if u.is_boosted(now) else 1)
    return [u.id for u in ranked]


def record_view(user: User, viewer_id: str, now: datetime, cap: int = VIEWERS_CAP) -> None:
    viewer_id = str(viewer_id)
    others = [v for v in user.viewers if v.viewer_id != viewer_id]
    user.viewers = ([Viewer(viewer_id=viewer_id, timestamp=to_iso(now))] + others)[:cap]


class DiscoveryEngine:
    def __init__(self, bot):
        self.bot = bot
        self.results: Dict[str, SearchResults] = {}

    # --- Criteria collection ---

    async def begin_search(self, user_id) -> None:
        user = await self.bot.store.get_user(user_id)
        if not user or not user.completed:
            return await self.bot.messenger.send_text(user_id, "Please create a profile first.")
        self.bot.sessions.set(user_id, SearchSession())
        await self.bot.messenger.send_text(
            user_id, "🔍 <b>New Search</b>\n\nWho are you looking for?", reply_markup=keyboards.gender_choice()
        )

    async def handle_gender(self, user_id, op: GenderOp, session: SearchSession) -> None:
        if session.step is not SearchStep.GENDER:
            return await self.reprompt(user_id, session)
        session.gender = op.value
        session.step = SearchStep.AGE_RANGE
        await self.reprompt(user_id, session)

    async def handle_age(self, user_id, bucket: AgeBucket, session: SearchSession) -> None:
        if session.step is not SearchStep.AGE_RANGE:
            return await self.reprompt(user_id, session)
        session.age_range = bucket.bounds
        session.step = SearchStep.INTERESTS
        await self.reprompt(user_id, session)

    async def handle_message(self, msg: IncomingMessage, session: SearchSession) -> None:
        if session.step is not SearchStep.INTERESTS or not msg.text:
            return await self.reprompt(msg.user_id, session)
        await self.run(msg.user_id, session, split_interests(msg.text))

    async def skip_interests(self, user_id, session: SearchSession) -> None:
        if session.step is not SearchStep.INTERESTS:
            return await self.reprompt(user_id, session)
        await self.run(user_id, session, [])

    async def reprompt(self, user_id, session: SearchSession) -> None:
        if session.step is SearchStep.GENDER:
            text, markup = "Please choose a gender:", keyboards.gender_choice()
        elif session.step is SearchStep.AGE_RANGE:
            text, markup = "Choose an age range:", keyboards.age_buckets()
        else:
            text, markup = (
                "Any interests to match? Send them separated by commas, or skip.",
                keyboards.skip_interests(),
            )
        await self.bot.messenger.send_text(user_id, text, reply_markup=markup)

    # --- Results ---

    async def run(self, user_id, session: SearchSession, interests: List[str]) -> None:
        self.bot.sessions.clear(user_id)
        criteria = SearchCriteria(gender=session.gender, age_range=session.age_range, interests=interests)
        doc = await self.bot.store.load()
        found = execute_search(doc, str(user_id), criteria, self.bot.now())
        logger.info(f"Search by {user_id} found {len(found)} candidates")
        if not found:
            self.results.pop(str(user_id), None)
            return await self.bot.messenger.send_text(user_id, NO_RESULTS)
        self.results[str(user_id)] = SearchResults(candidate_ids=found)
        await self.bot.messenger.send_text(user_id, f"✨ Found {len(found)} profile(s)!")
        await self.show_current(user_id)

    async def advance(self, user_id, direction: BrowseOp) -> Optional[str]:
        """Move the cursor and re-render. Returns a boundary notice when clamped."""
        results = self.results.get(str(user_id))
        if not results:
            return "This search has expired. Start a new one with 🔍 Search."
        step = 1 if direction is BrowseOp.NEXT else -1
        target = results.cursor + step
        if target < 0:
            results.cursor = 0
            return FIRST_PROFILE
        if target >= len(results.candidate_ids):
            results.cursor = len(results.candidate_ids) - 1
            return LAST_PROFILE
        results.cursor = target
        await self.show_current(user_id)
        return None

    async def show_current(self, user_id) -> None:
        user_id = str(user_id)
        results = self.results.get(user_id)
        while results and results.candidate_ids:
            candidate_id = results.current
            async with self.bot.store.transaction(candidate_id) as doc:
                candidate = doc.get_user(candidate_id)
                if candidate and not candidate.banned:
                    record_view(candidate, user_id, self.bot.now())
            if candidate and not candidate.banned:
                return await self._render_card(user_id, results, candidate)
            # gone or banned since the search ran
            results.candidate_ids.remove(candidate_id)
            results.cursor = min(results.cursor, max(len(results.candidate_ids) - 1, 0))

        self.results.pop(user_id, None)
        await self.bot.messenger.send_text(user_id, "No more profiles in this search.")

    async def _render_card(self, user_id: str, results: SearchResults, candidate: User) -> None:
        view = self.bot.profiles.render(candidate)
        caption = view.text
        if candidate.is_boosted(self.bot.now()):
            caption = "🚀 <b>Boosted</b>\n" + caption
        markup = keyboards.result_card(candidate.id, results.cursor, len(results.candidate_ids))
        if view.photos:
            delivery = await self.bot.messenger.edit_photo(
                user_id, results.message_id, view.photos[0], caption=caption, reply_markup=markup
            )
        else:
            if results.message_id is not None:
                await self.bot.messenger.delete(user_id, results.message_id)
            delivery = await self.bot.messenger.send_text(user_id, caption, reply_markup=markup)
        results.message_id = delivery.message_id if delivery.ok else None
