from datetime import timedelta

from datingbot.actions import BrowseOp
from datingbot.discovery import (
    FIRST_PROFILE,
    LAST_PROFILE,
    NO_RESULTS,
    SearchCriteria,
    SearchResults,
    execute_search,
    record_view,
)
from datingbot.models import Document, User, Viewer, to_iso
from datingbot.sessions import SearchSession, SearchStep

from conftest import NOW


def person(uid, **fields) -> User:
    base = dict(id=uid, name=f"U{uid}", age=22, gender="female", interests=["Music"], completed=True)
    base.update(fields)
    return User(**base)


def test_boosted_candidates_come_first_regardless_of_order():
    doc = Document(
        users={
            "1": person("1"),
            "2": person("2"),
            "3": person("3", boost_until=to_iso(NOW + timedelta(hours=2))),
            "4": person("4", boost_until=to_iso(NOW - timedelta(hours=2))),
        }
    )
    found = execute_search(doc, "99", SearchCriteria("female", (18, 25)), NOW)
    assert found == ["3", "1", "2", "4"]


def test_search_filters():
    doc = Document(
        users={
            "me": person("me"),
            "male": person("male", gender="male"),
            "old": person("old", age=26),
            "edge": person("edge", age=25),
            "banned": person("banned", banned=True),
            "chess": person("chess", interests=["Chess"]),
        }
    )
    found = execute_search(doc, "me", SearchCriteria("female", (18, 25), ["music"]), NOW)
    assert found == ["edge"]

    found = execute_search(doc, "me", SearchCriteria("female", (18, 25)), NOW)
    assert found == ["edge", "chess"]


def test_record_view_deduplicates_and_caps():
    user = person("1")
    user.viewers = [Viewer("a", "t1"), Viewer("b", "t2"), Viewer("c", "t3")]
    record_view(user, "b", NOW, cap=3)
    assert [v.viewer_id for v in user.viewers] == ["b", "a", "c"]
    assert user.viewers[0].timestamp == to_iso(NOW)

    record_view(user, "d", NOW, cap=3)
    assert [v.viewer_id for v in user.viewers] == ["d", "b", "a"]


async def test_search_flow_shows_boosted_card_and_records_view(bot, send, press, add_user, store, messenger):
    await add_user("10", gender="male")
    await add_user("11", age=22)
    await add_user("12", age=24, boost_until=to_iso(NOW + timedelta(hours=5)))
    await add_user("13", age=40)

    await send("10", "🔍 Search")
    assert isinstance(bot.sessions.get("10"), SearchSession)
    await press("10", "gender:female")
    assert bot.sessions.get("10").step is SearchStep.AGE_RANGE
    await press("10", "age:18-25")
    await press("10", "search:skip")

    assert bot.sessions.get("10") is None
    results = bot.discovery.results["10"]
    assert results.candidate_ids == ["12", "11"]
    card = [s for s in messenger.sent if s.method == "edit_photo"][-1]
    assert card.kwargs["photo"] == "photo-12"
    assert "Boosted" in card.text
    viewers = (await store.get_user("12")).viewers
    assert [v.viewer_id for v in viewers] == ["10"]


async def test_search_without_results(bot, send, press, add_user, messenger):
    await add_user("10", gender="male")
    await send("10", "🔍 Search")
    await press("10", "gender:other")
    await press("10", "age:46-99")
    await send("10", "golf")
    assert messenger.last_text("10") == NO_RESULTS
    assert "10" not in bot.discovery.results


async def test_search_needs_completed_profile(bot, send, messenger):
    await send("10", "🔍 Search")
    assert bot.sessions.get("10") is None
    assert messenger.last_text("10") == "Please create a profile first."


async def test_browsing_clamps_at_both_ends(bot, press, add_user, messenger):
    for uid in ("1", "2", "3"):
        await add_user(uid)
    bot.discovery.results["1"] = SearchResults(candidate_ids=["2", "3"])

    assert await bot.discovery.advance("1", BrowseOp.PREV) == FIRST_PROFILE
    assert bot.discovery.results["1"].cursor == 0

    await press("1", "browse:next")
    assert bot.discovery.results["1"].cursor == 1
    await press("1", "browse:next")
    assert bot.discovery.results["1"].cursor == 1
    assert messenger.answers()[-1].text == LAST_PROFILE


async def test_browsing_skips_profiles_banned_since_the_search(bot, add_user):
    for uid in ("1", "2"):
        await add_user(uid)
    await add_user("3", banned=True)
    bot.discovery.results["1"] = SearchResults(candidate_ids=["2", "3"])

    await bot.discovery.advance("1", BrowseOp.NEXT)
    assert bot.discovery.results["1"].candidate_ids == ["2"]
    assert bot.discovery.results["1"].cursor == 0


def test_unfinished_profiles_are_not_found():
    doc = Document(users={"me": person("me"), "shell": person("shell", completed=False, photos=[])})
    assert execute_search(doc, "me", SearchCriteria("female", (18, 25)), NOW) == []
