import html
import logging
from datetime import datetime
from typing import Callable, Optional

from . import keyboards
from .actions import (
    Action,
    AdminOp,
    AgeBucket,
    BrowseOp,
    EditOp,
    GenderOp,
    GiftOp,
    LikeOp,
    Menu,
    ProfileOp,
    ReportOp,
    SearchOp,
    StoreOp,
    decode_callback,
    decode_menu,
)
from .admin import AdminPanel
from .config import Settings
from .discovery import DiscoveryEngine
from .economy import CoinLedger
from .errors import BotError
from .messenger import Messenger
from .models import utcnow
from .profiles import ProfileManager
from .reports import ReportSystem
from .sessions import (
    AdminSession,
    EditFieldSession,
    GiftSession,
    ReportSession,
    SearchSession,
    SessionRegistry,
    WizardSession,
)
from .store import DocumentStore
from .updates import IncomingCallback, IncomingMessage, parse_update
from .wizard import ProfileWizard

logger = logging.getLogger(__name__)

BANNED_MESSAGE = "You have been banned from using this bot."
EXPIRED_BUTTON = "This button has expired."


class DatingBot:
    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        messenger: Messenger,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.store = store
        self.messenger = messenger
        self.clock = clock
        self.username: Optional[str] = None

        # Initialize Systems
        self.sessions = SessionRegistry()
        self.profiles = ProfileManager(self)
        self.wizard = ProfileWizard(self)
        self.discovery = DiscoveryEngine(self)
        self.ledger = CoinLedger(self)
        self.reports = ReportSystem(self)
        self.admin_panel = AdminPanel(self)

        self.commands = {
            "start": self.start_command,
            "menu": lambda user_id, arg: self.send_main_menu(user_id),
            "daily": lambda user_id, arg: self.ledger.daily(user_id),
            "cancel": self.cancel_command,
        }
        self.menu_map = {
            Menu.MY_PROFILE: self.view_profile,
            Menu.SEARCH: self.discovery.begin_search,
            Menu.MATCHES: self.ledger.show_matches,
            Menu.COIN_STORE: self.ledger.show_store,
            Menu.REFERRAL: self.ledger.send_referral_link,
            Menu.CREATE_PROFILE: self.create_profile,
            Menu.ADMIN_PANEL: self.admin_panel.open_panel,
            Menu.SUB_ADMIN_PANEL: self.admin_panel.open_sub_panel,
            Menu.BACK: self.send_main_menu,
        }

    def now(self) -> datetime:
        return self.clock()

    async def startup(self) -> None:
        await self.messenger.set_webhook(self.settings.webhook_url)
        self.username = await self.messenger.get_username()
        logger.info(f"Bot started as @{self.username}")

    # --- Update entry point ---

    async def process_update(self, payload: dict) -> None:
        update = parse_update(payload)
        if update is None:
            return
        try:
            if isinstance(update, IncomingCallback):
                await self.handle_callback(update)
            else:
                await self.handle_message(update)
        except BotError as e:
            await self.messenger.send_text(update.chat_id, e.message)
        except Exception:
            logger.exception(f"Error handling update from {update.user_id}")
            await self.send_error_message(update.chat_id)

    async def send_error_message(self, chat_id) -> None:
        await self.messenger.send_text(chat_id, "❌ Something went wrong. Please try again later.")

    async def is_banned(self, user_id) -> bool:
        if str(user_id) == self.settings.admin_id:
            return False
        user = await self.store.get_user(user_id)
        return bool(user and user.banned)

    # --- Messages ---

    async def handle_message(self, msg: IncomingMessage) -> None:
        user_id = msg.user_id
        if await self.is_banned(user_id):
            return await self.messenger.send_text(msg.chat_id, BANNED_MESSAGE)

        command = msg.command
        if command and command[0] in self.commands:
            name, arg = command
            self.sessions.clear(user_id)
            return await self.commands[name](user_id, arg)

        item = decode_menu(msg.text)
        if item:
            self.sessions.clear(user_id)
            return await self.handle_menu(user_id, item)

        session = self.sessions.get(user_id)
        if isinstance(session, WizardSession):
            return await self.wizard.handle_message(msg, session)
        if isinstance(session, EditFieldSession):
            return await self.wizard.handle_edit_message(msg, session)
        if isinstance(session, SearchSession):
            return await self.discovery.handle_message(msg, session)
        if isinstance(session, GiftSession):
            return await self.ledger.handle_gift_message(msg, session)
        if isinstance(session, ReportSession):
            return await self.reports.handle_reason(msg, session)
        if isinstance(session, AdminSession):
            return await self.admin_panel.handle_message(msg, session)

        if msg.text:
            await self.send_main_menu(user_id)

    async def handle_menu(self, user_id, item: Menu) -> None:
        handler = self.menu_map.get(item)
        if handler:
            return await handler(user_id)
        await self.admin_panel.handle_menu(user_id, item)

    async def start_command(self, user_id, referral_code: Optional[str] = None) -> None:
        user = await self.store.get_user(user_id)
        if user and user.completed:
            return await self.send_main_menu(user_id)

        result = await self.profiles.create_shell(user_id, referral_code)
        if result.created:
            await self.messenger.send_text(user_id, "Welcome to the bot! Since you're new, let's create your profile.")
            if result.bonus:
                await self.messenger.send_text(
                    user_id, f"✨ You received a {result.bonus} coin bonus for using a referral link!"
                )
        await self.wizard.start(user_id)

    async def cancel_command(self, user_id, arg: Optional[str] = None) -> None:
        await self.messenger.send_text(user_id, "Cancelled.", reply_markup=await self.menu_markup(user_id))

    async def create_profile(self, user_id) -> None:
        user = await self.store.get_user(user_id)
        if user and user.completed:
            return await self.messenger.send_text(
                user_id, "You already have a profile.", reply_markup=await self.menu_markup(user_id)
            )
        await self.wizard.start(user_id)

    async def menu_markup(self, user_id):
        user = await self.store.get_user(user_id)
        if not user or not user.completed:
            return keyboards.create_profile_menu()
        return keyboards.main_menu(await self.admin_panel.role_of(user_id))

    async def send_main_menu(self, user_id) -> None:
        user = await self.store.get_user(user_id)
        if user and user.completed:
            text = f"Welcome back, {html.escape(user.display_name)}! This is your main menu."
        else:
            text = "Welcome to the Dating Bot! Please create a profile to get started."
        await self.messenger.send_text(user_id, text, reply_markup=await self.menu_markup(user_id))

    async def view_profile(self, user_id) -> None:
        user = await self.store.get_user(user_id)
        if not user or not user.completed:
            return await self.messenger.send_text(
                user_id, "You don't have a profile yet.", reply_markup=keyboards.create_profile_menu()
            )
        await self.profiles.show(
            user_id, user, extended=True, reply_markup=keyboards.profile_actions(len(user.viewers))
        )

    async def view_other_profile(self, user_id, target_id) -> None:
        target = await self.store.get_user(target_id)
        if not target or target.banned or not target.completed:
            return await self.messenger.send_text(user_id, "This profile is no longer available.")
        await self.profiles.show(user_id, target)

    # --- Inline buttons ---

    async def handle_callback(self, cb: IncomingCallback) -> None:
        if await self.is_banned(cb.user_id):
            await self.messenger.answer_callback(cb.id, text=BANNED_MESSAGE, show_alert=True)
            return

        action = decode_callback(cb.data)
        if action is None:
            await self.messenger.answer_callback(cb.id, text="⚠️ Unknown command", show_alert=True)
            return

        notice = None
        try:
            notice = await self.dispatch_callback(cb, action)
        finally:
            await self.messenger.answer_callback(cb.id, text=notice)

    async def dispatch_callback(self, cb: IncomingCallback, action: Action) -> Optional[str]:
        """Run the handler for a decoded button press; returns a toast text, if any."""
        user_id, op, arg = cb.user_id, action.op, action.arg
        session = self.sessions.get(user_id)

        if isinstance(op, ProfileOp):
            if op is ProfileOp.EDIT:
                await self.messenger.send_text(
                    user_id, "✏️ Which field would you like to edit?", reply_markup=keyboards.edit_fields()
                )
            elif op is ProfileOp.VIEWERS:
                await self.ledger.show_viewers(user_id)
            elif arg:
                await self.view_other_profile(user_id, arg)

        elif isinstance(op, EditOp):
            await self.wizard.start_edit(user_id, op)

        elif isinstance(op, GenderOp):
            if isinstance(session, WizardSession):
                await self.wizard.handle_gender(user_id, op, session)
            elif isinstance(session, SearchSession):
                await self.discovery.handle_gender(user_id, op, session)
            elif isinstance(session, EditFieldSession):
                await self.wizard.handle_edit_gender(user_id, op, session)
            else:
                return EXPIRED_BUTTON

        elif isinstance(op, AgeBucket):
            if not isinstance(session, SearchSession):
                return EXPIRED_BUTTON
            await self.discovery.handle_age(user_id, op, session)

        elif isinstance(op, SearchOp):
            if not isinstance(session, SearchSession):
                return EXPIRED_BUTTON
            await self.discovery.skip_interests(user_id, session)

        elif isinstance(op, BrowseOp):
            return await self.discovery.advance(user_id, op)

        elif isinstance(op, LikeOp) and arg:
            await self.ledger.send_like(user_id, arg)

        elif isinstance(op, ReportOp) and arg:
            await self.reports.start_report(user_id, arg)

        elif isinstance(op, StoreOp):
            store_map = {
                StoreOp.DAILY: self.ledger.daily,
                StoreOp.BOOST: self.ledger.buy_boost,
                StoreOp.VIEWERS: self.ledger.show_viewers,
                StoreOp.GIFT: self.ledger.start_gift,
            }
            await store_map[op](user_id)

        elif isinstance(op, GiftOp):
            if not isinstance(session, GiftSession):
                return EXPIRED_BUTTON
            if op is GiftOp.CONFIRM:
                await self.ledger.confirm_gift(user_id, session)
            else:
                await self.ledger.cancel_gift(user_id)

        elif isinstance(op, AdminOp):
            await self.admin_panel.handle_callback(cb, op, arg)

        return None
