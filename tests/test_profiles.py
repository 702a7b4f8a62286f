import pytest

from datingbot.errors import NotFoundError, ValidationError
from datingbot.models import REFERRAL_BONUS, STARTING_COINS, User
from datingbot.profiles import coerce_field, split_interests


@pytest.mark.parametrize("raw,expected", [("18", 18), ("99", 99), (" 42 ", 42)])
def test_ages_in_range_are_accepted(raw, expected):
    assert coerce_field("age", raw) == expected


@pytest.mark.parametrize("raw", ["17", "100", "abc", "", None])
def test_ages_out_of_range_are_rejected(raw):
    with pytest.raises(ValidationError):
        coerce_field("age", raw)


def test_interests_are_split_and_trimmed():
    assert split_interests(" music, ,Travel ,") == ["music", "Travel"]
    with pytest.raises(ValidationError):
        coerce_field("interests", " , ")


def test_gender_must_be_known():
    assert coerce_field("gender", "Female") == "female"
    with pytest.raises(ValidationError):
        coerce_field("gender", "robot")


def test_photos_are_capped():
    assert coerce_field("photos", [f"p{i}" for i in range(8)]) == ["p0", "p1", "p2", "p3", "p4"]
    with pytest.raises(ValidationError):
        coerce_field("photos", [])


def test_blank_name_is_rejected_but_blank_limits_are_allowed():
    with pytest.raises(ValidationError):
        coerce_field("name", "   ")
    assert coerce_field("limits", "") == ""


async def test_rejected_age_leaves_profile_untouched(bot, add_user, store):
    await add_user("1", age=30)
    with pytest.raises(ValidationError):
        await bot.profiles.apply_field("1", "age", "17")
    assert (await store.get_user("1")).age == 30

    await bot.profiles.apply_field("1", "age", "18")
    assert (await store.get_user("1")).age == 18


async def test_apply_field_needs_a_profile(bot):
    with pytest.raises(NotFoundError):
        await bot.profiles.apply_field("404", "name", "Ghost")


async def test_shell_with_referral_code_gets_bonus(bot, add_user):
    await add_user("1")
    result = await bot.profiles.create_shell("2", "ref1")
    assert result.created
    assert result.user.coins == STARTING_COINS + REFERRAL_BONUS
    assert result.user.referred_by == "1"
    assert not result.user.completed


async def test_shell_creation_is_idempotent(bot):
    first = await bot.profiles.create_shell("2")
    second = await bot.profiles.create_shell("2", "whatever")
    assert not second.created
    assert second.user.referral_code == first.user.referral_code
    assert second.user.coins == STARTING_COINS


async def test_unknown_or_own_code_gives_no_bonus(bot):
    result = await bot.profiles.create_shell("3", "nope")
    assert result.bonus == 0
    assert result.user.referred_by is None


def test_render_escapes_user_text(bot):
    user = User(id="1", name="<b>Eve</b>", age=20, interests=["a&b"], limits="none")
    view = bot.profiles.render(user, extended=True)
    assert "&lt;b&gt;Eve&lt;/b&gt;" in view.text
    assert "a&amp;b" in view.text
    assert "Coins" in view.text
    assert "User ID" not in view.text


def test_moderator_view_shows_admin_info(bot):
    view = bot.profiles.render(User(id="9", referred_by="3", banned=True), for_moderator=True)
    assert "<code>9</code>" in view.text
    assert "Banned:</b> Yes" in view.text
