import logging
from typing import Optional

from . import keyboards
from .actions import EditOp, GenderOp
from .errors import NotFoundError, ValidationError
from .models import MAX_PHOTOS
from .profiles import FIELDS
from .sessions import EditFieldSession, WizardSession, WizardStep
from .updates import IncomingMessage

logger = logging.getLogger(__name__)

PROMPTS = {
    WizardStep.NAME: "👋 Let's create your profile!\n\nFirst, what's your name?",
    WizardStep.AGE: "Great! Now, how old are you?",
    WizardStep.GENDER: "What is your gender?",
    WizardStep.CITY: "What city do you live in?",
    WizardStep.INTERESTS: "List some interests, separated by commas.",
    WizardStep.PHOTO: "📸 Last step! Send a photo of yourself.",
}

EDIT_PROMPTS = {
    "name": "Send your new name.",
    "age": "Send your new age.",
    "gender": "Choose your gender:",
    "city": "Send your new city.",
    "interests": "Send your interests, separated by commas.",
    "limits": "Describe your limits (what you are not looking for).",
    "extraInfo": "Send any extra info you want on your profile.",
    "photos": f"Send up to {MAX_PHOTOS} photos, then tap Done.",
}


class ProfileWizard:
    """Linear profile-creation dialogue plus single-field editing."""

    def __init__(self, bot):
        self.bot = bot

    # --- Creation ---

    async def start(self, user_id) -> None:
        await self.bot.profiles.create_shell(user_id)
        self.bot.sessions.set(user_id, WizardSession())
        await self.bot.messenger.send_text(
            user_id, PROMPTS[WizardStep.NAME], reply_markup=keyboards.remove_keyboard()
        )

    async def prompt(self, user_id, step: WizardStep, error: Optional[str] = None) -> None:
        text = PROMPTS[step] if not error else f"{error}\n\n{PROMPTS[step]}"
        markup = keyboards.gender_choice() if step is WizardStep.GENDER else None
        await self.bot.messenger.send_text(user_id, text, reply_markup=markup)

    async def handle_message(self, msg: IncomingMessage, session: WizardSession) -> None:
        step = session.step
        if step is WizardStep.GENDER:
            return await self.prompt(msg.user_id, step, error="Please use the buttons below.")
        if step is WizardStep.PHOTO:
            if not msg.photo_id:
                return await self.prompt(msg.user_id, step, error="❌ That's not a photo.")
            return await self.complete(msg.user_id, msg.photo_id)
        if not msg.text:
            return await self.prompt(msg.user_id, step, error="❌ Please answer with text.")
        await self._apply_step(msg.user_id, session, msg.text)

    async def handle_gender(self, user_id, op: GenderOp, session: WizardSession) -> None:
        if session.step is not WizardStep.GENDER:
            return await self.prompt(user_id, session.step)
        await self._apply_step(user_id, session, op.value)

    async def _apply_step(self, user_id, session: WizardSession, raw: str) -> None:
        try:
            await self.bot.profiles.apply_field(user_id, session.step.value, raw)
        except ValidationError as e:
            return await self.prompt(user_id, session.step, error=e.message)
        except NotFoundError:
            # shell vanished (store reset); start over
            return await self.start(user_id)
        session.step = session.step.next()
        await self.prompt(user_id, session.step)

    async def complete(self, user_id, photo_id: str) -> None:
        user_id = str(user_id)
        async with self.bot.store.transaction(user_id) as doc:
            user = doc.get_user(user_id)
            if not user:
                self.bot.sessions.clear(user_id)
                return await self.bot.messenger.send_text(user_id, "Please use /start to begin again.")
            first_completion = not user.completed
            user.photos = [photo_id]
            user.completed = True
            referrer_id = self.bot.ledger.pay_referral_in(doc, user)

        self.bot.sessions.clear(user_id)
        logger.info(f"User {user_id} completed their profile")
        await self.bot.messenger.send_text(user_id, "🎉 All done! Your profile has been created.")
        if referrer_id:
            await self.bot.ledger.notify_referrer(referrer_id, user)
        if first_completion:
            await self.bot.admin_panel.notify_new_user(user)
        await self.bot.send_main_menu(user_id)

    # --- Editing ---

    async def start_edit(self, user_id, op: EditOp) -> None:
        if op is EditOp.DONE:
            return await self.finish_photos(user_id)
        field = op.value
        self.bot.sessions.set(user_id, EditFieldSession(field=field))
        markup = keyboards.gender_choice() if field == "gender" else None
        if field == "photos":
            markup = keyboards.photos_done()
        await self.bot.messenger.send_text(user_id, EDIT_PROMPTS[field], reply_markup=markup)

    async def handle_edit_message(self, msg: IncomingMessage, session: EditFieldSession) -> None:
        if session.field == "photos":
            if not msg.photo_id:
                return await self.bot.messenger.send_text(
                    msg.user_id, "Send a photo, or tap Done.", reply_markup=keyboards.photos_done()
                )
            session.pending.append(msg.photo_id)
            if len(session.pending) >= MAX_PHOTOS:
                return await self.finish_photos(msg.user_id)
            return await self.bot.messenger.send_text(
                msg.user_id,
                f"📸 Got it ({len(session.pending)}/{MAX_PHOTOS}). Send more or tap Done.",
                reply_markup=keyboards.photos_done(),
            )
        if session.field == "gender":
            return await self.bot.messenger.send_text(
                msg.user_id, "Please use the buttons below.", reply_markup=keyboards.gender_choice()
            )
        if not msg.text:
            return await self.bot.messenger.send_text(
                msg.user_id, f"❌ Please answer with text.\n\n{EDIT_PROMPTS[session.field]}"
            )
        await self._apply_edit(msg.user_id, session.field, msg.text)

    async def handle_edit_gender(self, user_id, op: GenderOp, session: EditFieldSession) -> None:
        if session.field != "gender":
            return
        await self._apply_edit(user_id, "gender", op.value)

    async def finish_photos(self, user_id) -> None:
        session = self.bot.sessions.get(user_id)
        if not isinstance(session, EditFieldSession) or session.field != "photos":
            return
        await self._apply_edit(user_id, "photos", session.pending)

    async def _apply_edit(self, user_id, field: str, raw) -> None:
        try:
            user = await self.bot.profiles.apply_field(user_id, field, raw)
        except ValidationError as e:
            return await self.bot.messenger.send_text(user_id, e.message)
        except NotFoundError as e:
            self.bot.sessions.clear(user_id)
            return await self.bot.messenger.send_text(user_id, e.message)
        self.bot.sessions.clear(user_id)
        logger.info(f"User {user_id} updated {FIELDS[field]}")
        await self.bot.messenger.send_text(user_id, "✅ Profile updated!")
        await self.bot.profiles.show(user_id, user, extended=True)
