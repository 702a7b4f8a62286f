import pytest

from datingbot.errors import PermissionDeniedError, ValidationError
from datingbot.models import REPORT_CLOSED
from datingbot.sessions import AdminPrompt, AdminSession

from conftest import ADMIN_ID


async def test_ban_is_idempotent(bot, add_user, kv):
    await add_user("2")
    assert await bot.admin_panel.set_banned("2", True)
    snapshot = kv.data["data"]
    assert not await bot.admin_panel.set_banned("2", True)
    assert kv.data["data"] == snapshot


async def test_admin_cannot_be_banned(bot):
    with pytest.raises(PermissionDeniedError):
        await bot.admin_panel.set_banned(ADMIN_ID, True)


async def test_banned_user_is_stopped_at_the_gate(bot, add_user, send, press, messenger):
    await add_user("2", banned=True)
    await send("2", "✨ My Profile")
    assert messenger.texts("2") == ["You have been banned from using this bot."]

    messenger.clear()
    await press("2", "store:daily")
    assert messenger.texts("2") == []
    answer = messenger.answers()[-1]
    assert answer.text == "You have been banned from using this bot."
    assert answer.kwargs["show_alert"]


async def test_ban_and_unban_through_buttons(bot, add_user, press, store, messenger):
    await add_user("2")
    await press(ADMIN_ID, "admin:ban:2")
    assert (await store.get_user("2")).banned
    assert messenger.last_text("2") == "You have been banned from using this bot."

    await press(ADMIN_ID, "admin:ban:2")
    assert messenger.last_text(ADMIN_ID) == "ℹ️ User 2 is already banned."

    await press(ADMIN_ID, "admin:unban:2")
    assert not (await store.get_user("2")).banned


async def test_promote_and_demote_are_idempotent(bot, add_user, store):
    await add_user("5")
    assert await bot.admin_panel.promote("5")
    assert not await bot.admin_panel.promote("5")
    assert (await store.load()).sub_admins == ["5"]

    assert await bot.admin_panel.demote("5")
    assert not await bot.admin_panel.demote("5")
    assert (await store.load()).sub_admins == []


async def test_promote_via_prompt(bot, add_user, press, send, store, messenger):
    await add_user("5")
    await press(ADMIN_ID, "admin:promote")
    assert bot.sessions.get(ADMIN_ID) == AdminSession(prompt=AdminPrompt.PROMOTE)
    await send(ADMIN_ID, "5")
    assert (await store.load()).sub_admins == ["5"]
    assert "now a sub-admin" in messenger.last_text(ADMIN_ID)

    await press(ADMIN_ID, "admin:promote")
    await send(ADMIN_ID, "5")
    assert "already a sub-admin" in messenger.last_text(ADMIN_ID)


async def test_sub_admin_console_is_reduced(bot, add_user, press, send, store, messenger):
    await add_user("5")
    await add_user("2")
    await bot.admin_panel.promote("5")

    await press("5", "admin:grant:2")
    assert messenger.last_text("5") == "⛔️ You are not authorized to do that."
    assert bot.sessions.get("5") is None

    await send("5", "📊 Server Stats")
    assert messenger.last_text("5") == "⛔️ You are not authorized to do that."

    await press("5", "admin:ban:2")
    assert (await store.get_user("2")).banned

    await send("5", "👥 View Users")
    await send("5", "2")
    card = [s for s in messenger.sent if s.method == "send_photo" and s.chat_id == "5"][-1]
    assert "Admin Info" in card.text
    assert "Coins" not in card.text


async def test_regular_user_cannot_open_admin_panel(bot, add_user, send, messenger):
    await add_user("7")
    await send("7", "👑 Admin Panel")
    assert messenger.last_text("7") == "⛔️ You are not authorized to do that."


async def test_statistics(bot, add_user):
    await add_user("1")
    await add_user("2")
    await bot.ledger.like("1", "2")
    await bot.ledger.like("2", "1")
    await bot.reports.file_report("1", "2", "spam")
    stats = await bot.admin_panel.statistics()
    assert (stats.users, stats.matches, stats.open_reports, stats.total_reports) == (2, 1, 1, 1)


async def test_broadcast_tallies_deliveries(bot, add_user, messenger):
    await add_user("1")
    await add_user("2")
    await add_user("3", banned=True)
    messenger.fail_for.add("2")

    result = await bot.admin_panel.broadcast("Hello everyone")
    assert (result.total, result.successful, result.failed) == (2, 1, 1)
    assert messenger.texts("1") == ["Hello everyone"]
    assert messenger.texts("3") == []


async def test_broadcast_flow_and_cancel(bot, add_user, send, messenger):
    await add_user("1")
    await send(ADMIN_ID, "📢 Broadcast")
    assert bot.sessions.get(ADMIN_ID).prompt is AdminPrompt.BROADCAST
    await send(ADMIN_ID, "cancel")
    assert bot.sessions.get(ADMIN_ID) is None
    assert messenger.texts("1") == []

    await send(ADMIN_ID, "📢 Broadcast")
    await send(ADMIN_ID, "/cancel")
    assert bot.sessions.get(ADMIN_ID) is None
    assert messenger.last_text(ADMIN_ID) == "Cancelled."

    await send(ADMIN_ID, "📢 Broadcast")
    await send(ADMIN_ID, "Big news")
    assert messenger.texts("1") == ["Big news"]
    assert "Sent: 1" in messenger.last_text(ADMIN_ID)


async def test_grant_flow(bot, add_user, send, store, messenger):
    await add_user("2", coins=0)
    await send(ADMIN_ID, "🎁 Grant Coins")
    await send(ADMIN_ID, "2")
    assert bot.sessions.get(ADMIN_ID) == AdminSession(prompt=AdminPrompt.GRANT_AMOUNT, target_id="2")
    await send(ADMIN_ID, "abc")
    assert bot.sessions.get(ADMIN_ID).prompt is AdminPrompt.GRANT_AMOUNT
    await send(ADMIN_ID, "250")
    assert (await store.get_user("2")).coins == 250
    assert "granted you 250 coins" in messenger.last_text("2")


async def test_grant_to_unknown_user_aborts(bot, send, messenger):
    await send(ADMIN_ID, "🎁 Grant Coins")
    await send(ADMIN_ID, "404")
    assert bot.sessions.get(ADMIN_ID) is None
    assert messenger.last_text(ADMIN_ID) == "User ID not found."


async def test_users_are_paged(bot, add_user, press, messenger):
    for uid in range(1, 8):
        await add_user(str(uid))
    await press(ADMIN_ID, "admin:users:1")
    page = [s for s in messenger.sent if s.chat_id == ADMIN_ID and s.method == "send_text"][-1]
    assert "7 total" in page.text


async def test_report_lifecycle(bot, add_user, press, send, store, messenger):
    await add_user("1")
    await add_user("2")
    await press("1", "report:file:2")
    await send("1", "Fake photos")

    doc = await store.load()
    assert len(doc.reports) == 1
    report = doc.reports[0]
    assert (report.reporter_id, report.reported_id, report.reason) == ("1", "2", "Fake photos")
    assert report.is_open
    assert any(f"New Report #{report.id}" in t for t in messenger.texts(ADMIN_ID))

    await press(ADMIN_ID, f"admin:resolve:{report.id}")
    assert (await store.load()).reports[0].status == REPORT_CLOSED

    with pytest.raises(ValidationError):
        await bot.reports.resolve(report.id)


async def test_empty_report_reason_reprompts(bot, add_user, press, send, store):
    await add_user("1")
    await add_user("2")
    await press("1", "report:file:2")
    await send("1", photo="not-a-reason")
    assert bot.sessions.get("1") is not None
    assert (await store.load()).reports == []
