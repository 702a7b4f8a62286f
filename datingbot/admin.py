import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Optional

from . import keyboards
from .actions import AdminOp, Menu
from .economy import parse_amount
from .errors import NotFoundError, PermissionDeniedError, ValidationError
from .models import ROLE_ADMIN, ROLE_SUB_ADMIN, ROLE_USER, Document, User
from .sessions import AdminPrompt, AdminSession
from .updates import IncomingCallback, IncomingMessage

logger = logging.getLogger(__name__)

USERS_PAGE_SIZE = 5

# what a sub-admin may do from a user card
SUB_ADMIN_OPS = {AdminOp.USER, AdminOp.BAN, AdminOp.UNBAN}

ADMIN_PROMPTS = {
    AdminPrompt.LOOKUP_USER: "🔢 Send the User ID to look up.",
    AdminPrompt.VIEW_USER: "🔢 Send the User ID to view.",
    AdminPrompt.GRANT_RECIPIENT: "🔢 Send the User ID to grant coins to.",
    AdminPrompt.GRANT_AMOUNT: "💰 How many coins should be granted?",
    AdminPrompt.BROADCAST: "📢 Send the message to broadcast to all users, or /cancel to abort.",
    AdminPrompt.PROMOTE: "🔢 Send the User ID to promote to sub-admin.",
    AdminPrompt.DEMOTE: "🔢 Send the User ID to demote.",
}


@dataclass
class Stats:
    users: int
    matches: int
    open_reports: int
    total_reports: int


@dataclass
class BroadcastResult:
    total: int
    successful: int
    failed: int


class AdminPanel:
    def __init__(self, bot):
        self.bot = bot
        self.menu_map = {
            Menu.STATS: self.show_statistics,
            Menu.MANAGE_USERS: self.prompt_lookup,
            Menu.LIST_USERS: self.list_users,
            Menu.MANAGE_REPORTS: self.bot.reports.list_reports,
            Menu.MANAGE_SUB_ADMINS: self.show_sub_admins,
            Menu.GRANT_COINS: self.prompt_grant,
            Menu.BROADCAST: self.prompt_broadcast,
        }

    # --- Roles ---

    def role_in(self, doc: Document, user_id) -> str:
        user_id = str(user_id)
        if user_id == self.bot.settings.admin_id:
            return ROLE_ADMIN
        if user_id in doc.sub_admins:
            return ROLE_SUB_ADMIN
        return ROLE_USER

    async def role_of(self, user_id) -> str:
        if str(user_id) == self.bot.settings.admin_id:
            return ROLE_ADMIN
        return self.role_in(await self.bot.store.load(), user_id)

    async def require(self, user_id, *roles: str) -> str:
        role = await self.role_of(user_id)
        if role not in roles:
            logger.warning(f"User {user_id} ({role}) refused a moderator action")
            raise PermissionDeniedError("⛔️ You are not authorized to do that.")
        return role

    # --- Panels ---

    async def open_panel(self, user_id) -> None:
        await self.require(user_id, ROLE_ADMIN)
        await self.bot.messenger.send_text(
            user_id, "<b>👑 Admin Panel</b>\n\nChoose an option below:", reply_markup=keyboards.admin_menu()
        )

    async def open_sub_panel(self, user_id) -> None:
        await self.require(user_id, ROLE_SUB_ADMIN)
        await self.bot.messenger.send_text(
            user_id, "<b>🛡️ Sub-Admin Panel</b>\n\nChoose an option below:", reply_markup=keyboards.sub_admin_menu()
        )

    async def handle_menu(self, user_id, item: Menu) -> None:
        if item is Menu.VIEW_USERS:
            await self.require(user_id, ROLE_ADMIN, ROLE_SUB_ADMIN)
            return await self.prompt(user_id, AdminPrompt.VIEW_USER)
        await self.require(user_id, ROLE_ADMIN)
        await self.menu_map[item](user_id)

    async def prompt(self, user_id, prompt: AdminPrompt, target_id: Optional[str] = None) -> None:
        self.bot.sessions.set(user_id, AdminSession(prompt=prompt, target_id=target_id))
        await self.bot.messenger.send_text(user_id, ADMIN_PROMPTS[prompt])

    async def prompt_lookup(self, user_id) -> None:
        await self.prompt(user_id, AdminPrompt.LOOKUP_USER)

    async def prompt_grant(self, user_id) -> None:
        await self.prompt(user_id, AdminPrompt.GRANT_RECIPIENT)

    async def prompt_broadcast(self, user_id) -> None:
        await self.prompt(user_id, AdminPrompt.BROADCAST)

    # --- Statistics & users ---

    async def statistics(self) -> Stats:
        doc = await self.bot.store.load()
        return Stats(
            users=len(doc.users),
            matches=len(doc.matches),
            open_reports=sum(1 for r in doc.reports if r.is_open),
            total_reports=len(doc.reports),
        )

    async def show_statistics(self, chat_id) -> None:
        stats = await self.statistics()
        await self.bot.messenger.send_text(
            chat_id,
            "📊 <b>Server Stats</b>\n\n"
            f"👥 Users: {stats.users}\n"
            f"💞 Matches: {stats.matches}\n"
            f"🚨 Open reports: {stats.open_reports} / {stats.total_reports}",
        )

    async def list_users(self, chat_id, page: int = 0) -> None:
        doc = await self.bot.store.load()
        users = list(doc.users.values())
        if not users:
            return await self.bot.messenger.send_text(chat_id, "❌ No users yet.")
        pages = (len(users) + USERS_PAGE_SIZE - 1) // USERS_PAGE_SIZE
        page = min(max(page, 0), pages - 1)
        chunk = users[page * USERS_PAGE_SIZE:(page + 1) * USERS_PAGE_SIZE]
        await self.bot.messenger.send_text(
            chat_id,
            f"📋 <b>Users</b> ({len(users)} total)",
            reply_markup=keyboards.users_page(chunk, page, pages),
        )

    async def show_user(self, chat_id, target_id, full_admin: bool) -> None:
        user = await self.bot.store.get_user(target_id)
        if not user:
            return await self.bot.messenger.send_text(chat_id, "User ID not found.")
        await self.bot.profiles.show(
            chat_id,
            user,
            extended=full_admin,
            for_moderator=True,
            reply_markup=keyboards.admin_user_card(user, full_admin),
        )

    # --- Moderation ---

    async def set_banned(self, target_id, banned: bool) -> bool:
        """Returns False when the flag already had that value."""
        if str(target_id) == self.bot.settings.admin_id:
            raise PermissionDeniedError("⛔️ The admin can't be banned.")
        async with self.bot.store.transaction(target_id) as doc:
            user = doc.get_user(target_id)
            if not user:
                raise NotFoundError("User ID not found.")
            if user.banned == banned:
                return False
            user.banned = banned
        logger.info(f"User {target_id} {'banned' if banned else 'unbanned'}")
        return True

    async def ban(self, chat_id, target_id, banned: bool = True) -> None:
        changed = await self.set_banned(target_id, banned)
        verb = "banned" if banned else "unbanned"
        if not changed:
            return await self.bot.messenger.send_text(chat_id, f"ℹ️ User {target_id} is already {verb}.")
        await self.bot.messenger.send_text(chat_id, f"✅ User {target_id} has been {verb}.")
        if banned:
            await self.bot.messenger.send_text(target_id, "You have been banned from using this bot.")
        else:
            await self.bot.messenger.send_text(target_id, "✅ You have been unbanned. Welcome back!")

    async def broadcast(self, text: str) -> BroadcastResult:
        doc = await self.bot.store.load()
        recipients = [u.id for u in doc.users.values() if not u.banned]
        successful = 0
        failed = 0
        for user_id in recipients:
            delivery = await self.bot.messenger.send_text(user_id, text)
            if delivery.ok:
                successful += 1
            else:
                failed += 1
            await asyncio.sleep(self.bot.settings.broadcast_delay)
        logger.info(f"Broadcast finished: {successful} sent, {failed} failed")
        return BroadcastResult(total=len(recipients), successful=successful, failed=failed)

    async def promote(self, target_id) -> bool:
        target_id = str(target_id)
        if target_id == self.bot.settings.admin_id:
            raise ValidationError("ℹ️ That user is already the admin.")
        async with self.bot.store.transaction(target_id) as doc:
            if not doc.get_user(target_id):
                raise NotFoundError("User ID not found.")
            if target_id in doc.sub_admins:
                return False
            doc.sub_admins.append(target_id)
        logger.info(f"User {target_id} promoted to sub-admin")
        return True

    async def demote(self, target_id) -> bool:
        target_id = str(target_id)
        async with self.bot.store.transaction(target_id) as doc:
            if target_id not in doc.sub_admins:
                return False
            doc.sub_admins.remove(target_id)
        logger.info(f"User {target_id} demoted")
        return True

    async def show_sub_admins(self, chat_id) -> None:
        doc = await self.bot.store.load()
        lines = []
        for sub_id in doc.sub_admins:
            user = doc.get_user(sub_id)
            lines.append(f"• {html.escape(user.display_name if user else 'Unknown User')} (<code>{sub_id}</code>)")
        text = "🛡️ <b>Sub-Admins</b>\n\n" + ("\n".join(lines) if lines else "No sub-admins yet.")
        await self.bot.messenger.send_text(chat_id, text, reply_markup=keyboards.sub_admin_manage())

    async def notify_new_user(self, user: User) -> None:
        await self.bot.messenger.send_text(
            self.bot.settings.admin_id,
            f"🆕 <b>New user registered</b>\n\n"
            f"{html.escape(user.display_name)} (<code>{user.id}</code>), "
            f"{user.age or '?'}, {html.escape(user.city or 'N/A')}",
        )

    # --- Inline buttons ---

    async def handle_callback(self, cb: IncomingCallback, op: AdminOp, arg: Optional[str]) -> None:
        role = await self.require(cb.user_id, ROLE_ADMIN, ROLE_SUB_ADMIN)
        if role != ROLE_ADMIN and op not in SUB_ADMIN_OPS:
            raise PermissionDeniedError("⛔️ You are not authorized to do that.")

        chat_id = cb.chat_id
        action_map = {
            AdminOp.USERS: lambda: self.list_users(chat_id, int(arg or 0)),
            AdminOp.USER: lambda: self.show_user(chat_id, arg, role == ROLE_ADMIN),
            AdminOp.BAN: lambda: self.ban(chat_id, arg, True),
            AdminOp.UNBAN: lambda: self.ban(chat_id, arg, False),
            AdminOp.GRANT: lambda: self.prompt(cb.user_id, AdminPrompt.GRANT_AMOUNT, target_id=arg),
            AdminOp.PROMOTE: lambda: self.prompt(cb.user_id, AdminPrompt.PROMOTE),
            AdminOp.DEMOTE: lambda: self.prompt(cb.user_id, AdminPrompt.DEMOTE),
            AdminOp.REPORTS: lambda: self.bot.reports.list_reports(chat_id),
            AdminOp.REPORT: lambda: self.bot.reports.show_report(chat_id, arg),
            AdminOp.RESOLVE: lambda: self.resolve_report(chat_id, arg),
        }
        if op not in (AdminOp.REPORTS, AdminOp.PROMOTE, AdminOp.DEMOTE, AdminOp.USERS) and not arg:
            raise ValidationError("⚠️ Unknown command")
        await action_map[op]()

    async def resolve_report(self, chat_id, report_id) -> None:
        report = await self.bot.reports.resolve(report_id)
        await self.bot.messenger.send_text(chat_id, f"✅ Report #{report.id} marked as resolved.")

    # --- Typed replies ---

    async def handle_message(self, msg: IncomingMessage, session: AdminSession) -> None:
        user_id = msg.user_id
        text = (msg.text or "").strip()
        messenger = self.bot.messenger

        if session.prompt is AdminPrompt.BROADCAST:
            if text.lower() == "cancel":
                self.bot.sessions.clear(user_id)
                return await messenger.send_text(user_id, "❌ Broadcast cancelled.", reply_markup=keyboards.admin_menu())
            if not text:
                return await messenger.send_text(user_id, ADMIN_PROMPTS[AdminPrompt.BROADCAST])
            self.bot.sessions.clear(user_id)
            await messenger.send_text(user_id, "🚀 Sending...")
            result = await self.broadcast(text)
            return await messenger.send_text(
                user_id,
                "✅ Broadcast complete!\n\n"
                f"- Users: {result.total}\n"
                f"- Sent: {result.successful}\n"
                f"- Failed: {result.failed}",
                reply_markup=keyboards.admin_menu(),
            )

        if session.prompt is AdminPrompt.GRANT_AMOUNT:
            try:
                amount = parse_amount(text)
            except ValidationError as e:
                return await messenger.send_text(user_id, e.message)
            self.bot.sessions.clear(user_id)
            target = await self.bot.ledger.grant(session.target_id, amount)
            await messenger.send_text(
                user_id, f"✅ Granted {amount} coins to {html.escape(target.display_name)}. New balance: {target.coins}."
            )
            return await messenger.send_text(target.id, f"🎁 An admin has granted you {amount} coins!")

        if not text:
            return await messenger.send_text(user_id, ADMIN_PROMPTS[session.prompt])
        self.bot.sessions.clear(user_id)

        if session.prompt in (AdminPrompt.LOOKUP_USER, AdminPrompt.VIEW_USER):
            return await self.show_user(user_id, text, session.prompt is AdminPrompt.LOOKUP_USER)

        if session.prompt is AdminPrompt.GRANT_RECIPIENT:
            if not await self.bot.store.get_user(text):
                raise NotFoundError("User ID not found.")
            return await self.prompt(user_id, AdminPrompt.GRANT_AMOUNT, target_id=text)

        if session.prompt is AdminPrompt.PROMOTE:
            if await self.promote(text):
                await messenger.send_text(text, "🛡️ You have been promoted to sub-admin.")
                return await messenger.send_text(user_id, f"✅ User {text} is now a sub-admin.")
            return await messenger.send_text(user_id, f"ℹ️ User {text} is already a sub-admin.")

        if session.prompt is AdminPrompt.DEMOTE:
            if await self.demote(text):
                await messenger.send_text(text, "ℹ️ You are no longer a sub-admin.")
                return await messenger.send_text(user_id, f"✅ User {text} is no longer a sub-admin.")
            return await messenger.send_text(user_id, f"ℹ️ User {text} is not a sub-admin.")
