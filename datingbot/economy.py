import html
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from . import keyboards
from .errors import BotError, InsufficientFundsError, NotFoundError, ValidationError
from .models import (
    BOOST_COST,
    BOOST_HOURS,
    DAILY_BONUS,
    LIKE_COST,
    REFERRER_REWARD,
    VIEWERS_COST,
    VIEWERS_SHOWN,
    Document,
    Match,
    User,
    Viewer,
    parse_iso,
    to_iso,
)
from .sessions import GiftSession, GiftStep
from .updates import IncomingMessage

logger = logging.getLogger(__name__)

DAILY_WINDOW = timedelta(hours=24)


@dataclass
class LikeResult:
    liker: User
    target: User
    match: Optional[Match] = None


@dataclass
class DailyResult:
    granted: bool
    balance: int
    wait: Optional[timedelta] = None


def charge(user: User, cost: int) -> None:
    if user.coins < cost:
        raise InsufficientFundsError(cost, user.coins)
    user.coins -= cost


def format_wait(wait: timedelta) -> str:
    minutes = int(wait.total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60}m"


def parse_amount(raw: Optional[str]) -> int:
    try:
        amount = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("❌ Please send a whole number of coins.")
    if amount <= 0:
        raise ValidationError("❌ The amount must be a positive number.")
    return amount


class CoinLedger:
    """Likes, matches and every coin movement.

    Each operation is one read-modify-write of the whole document; raising a
    BotError inside the transaction leaves the store untouched.
    """

    def __init__(self, bot):
        self.bot = bot

    def _require_user(self, doc: Document, user_id: str) -> User:
        user = doc.get_user(user_id)
        if not user:
            raise NotFoundError("Please create a profile first. Use /start.")
        return user

    # --- Likes & matches ---

    async def like(self, liker_id, target_id) -> LikeResult:
        liker_id, target_id = str(liker_id), str(target_id)
        if liker_id == target_id:
            raise ValidationError("You can't like yourself.")
        async with self.bot.store.transaction(liker_id, target_id) as doc:
            liker = self._require_user(doc, liker_id)
            target = doc.get_user(target_id)
            if not target or target.banned or not target.completed:
                raise NotFoundError("This profile is no longer available.")
            if target_id in liker.likes:
                raise ValidationError("❤️ You already liked this profile.")
            charge(liker, LIKE_COST)
            liker.likes.append(target_id)

            match = None
            if liker_id in target.likes and not doc.find_match(liker_id, target_id):
                match = Match.create(liker_id, target_id, self.bot.now())
                doc.matches[match.id] = match
                if target_id not in liker.matches:
                    liker.matches.append(target_id)
                if liker_id not in target.matches:
                    target.matches.append(liker_id)
                logger.info(f"New match {match.id}: {liker_id} <-> {target_id}")
            return LikeResult(liker=liker, target=target, match=match)

    async def send_like(self, liker_id, target_id) -> Optional[LikeResult]:
        try:
            result = await self.like(liker_id, target_id)
        except BotError as e:
            await self.bot.messenger.send_text(liker_id, e.message)
            return None

        messenger = self.bot.messenger
        if result.match:
            liker, target = result.liker, result.target
            await messenger.send_text(
                liker.id,
                f"💞 It's a match! You and <b>{html.escape(target.display_name)}</b> like each other.",
                reply_markup=keyboards.match_list([target]),
            )
            await messenger.send_text(
                target.id,
                f"💞 It's a match! You and <b>{html.escape(liker.display_name)}</b> like each other.",
                reply_markup=keyboards.match_list([liker]),
            )
        else:
            await messenger.send_text(
                liker_id,
                f"❤️ Like sent! If they like you back, it's a match. Balance: {result.liker.coins} coins.",
            )
        return result

    async def show_matches(self, user_id) -> None:
        doc = await self.bot.store.load()
        user = doc.get_user(user_id)
        if not user or not user.completed:
            return await self.bot.messenger.send_text(user_id, "Please create a profile first.")
        matched = [doc.users[m] for m in user.matches if m in doc.users]
        if not matched:
            return await self.bot.messenger.send_text(user_id, "💔 No matches yet. Keep searching!")
        await self.bot.messenger.send_text(
            user_id, f"❤️ <b>Your Matches ({len(matched)})</b>", reply_markup=keyboards.match_list(matched)
        )

    # --- Daily bonus, boost, viewers ---

    async def claim_daily(self, user_id) -> DailyResult:
        now = self.bot.now()
        async with self.bot.store.transaction(user_id) as doc:
            user = self._require_user(doc, str(user_id))
            last = parse_iso(user.last_daily)
            if last and now - last < DAILY_WINDOW:
                return DailyResult(granted=False, balance=user.coins, wait=DAILY_WINDOW - (now - last))
            user.coins += DAILY_BONUS
            user.last_daily = to_iso(now)
            return DailyResult(granted=True, balance=user.coins)

    async def daily(self, user_id) -> None:
        try:
            result = await self.claim_daily(user_id)
        except NotFoundError:
            return await self.bot.messenger.send_text(
                user_id, "You need a profile to claim a bonus. Use /start to create one."
            )
        if not result.granted:
            text = f"You have already claimed your daily bonus. Please wait {format_wait(result.wait)}."
        else:
            text = f"🎉 You have claimed your daily bonus of {DAILY_BONUS} coins! Your new balance is {result.balance}."
        await self.bot.messenger.send_text(user_id, text)

    async def boost(self, user_id) -> datetime:
        now = self.bot.now()
        async with self.bot.store.transaction(user_id) as doc:
            user = self._require_user(doc, str(user_id))
            charge(user, BOOST_COST)
            current = parse_iso(user.boost_until)
            base = current if current and current > now else now
            until = base + timedelta(hours=BOOST_HOURS)
            user.boost_until = to_iso(until)
            return until

    async def buy_boost(self, user_id) -> None:
        try:
            until = await self.boost(user_id)
        except BotError as e:
            return await self.bot.messenger.send_text(user_id, e.message)
        await self.bot.messenger.send_text(
            user_id,
            f"🚀 Your profile is boosted until {until:%Y-%m-%d %H:%M} UTC! You'll appear first in searches.",
        )

    async def unlock_viewers(self, user_id) -> List[Viewer]:
        async with self.bot.store.transaction(user_id) as doc:
            user = self._require_user(doc, str(user_id))
            charge(user, VIEWERS_COST)
            return list(user.viewers[:VIEWERS_SHOWN])

    async def show_viewers(self, user_id) -> None:
        try:
            viewers = await self.unlock_viewers(user_id)
        except BotError as e:
            return await self.bot.messenger.send_text(user_id, e.message)
        if not viewers:
            return await self.bot.messenger.send_text(user_id, "👀 Nobody has viewed your profile yet.")
        doc = await self.bot.store.load()
        lines = []
        for v in viewers:
            viewer = doc.get_user(v.viewer_id)
            name = html.escape(viewer.display_name) if viewer else "Unknown User"
            seen = parse_iso(v.timestamp)
            lines.append(f"👤 {name} · {seen:%Y-%m-%d %H:%M}" if seen else f"👤 {name}")
        await self.bot.messenger.send_text(
            user_id,
            "👀 <b>Who Viewed Me</b>\n\n" + "\n".join(lines),
            reply_markup=keyboards.match_list([doc.users[v.viewer_id] for v in viewers if v.viewer_id in doc.users]),
        )

    async def show_store(self, user_id) -> None:
        user = await self.bot.store.get_user(user_id)
        if not user:
            return await self.bot.messenger.send_text(user_id, "Please create a profile first.")
        await self.bot.messenger.send_text(
            user_id,
            f"💰 <b>Coin Store</b>\n\nYour balance: <b>{user.coins}</b> coins.\n"
            f"❤️ Each like costs {LIKE_COST} coins.",
            reply_markup=keyboards.coin_store(),
        )

    # --- Referrals ---

    def pay_referral_in(self, doc: Document, user: User) -> Optional[str]:
        """Credit the referrer once, on the referee's first completed profile."""
        if not user.referred_by or user.referral_paid:
            return None
        referrer = doc.get_user(user.referred_by)
        if not referrer or referrer.id == user.id:
            return None
        referrer.coins += REFERRER_REWARD
        user.referral_paid = True
        logger.info(f"Referral payout: {referrer.id} earned {REFERRER_REWARD} for {user.id}")
        return referrer.id

    async def notify_referrer(self, referrer_id: str, referee: User) -> None:
        await self.bot.messenger.send_text(
            referrer_id,
            f"🎉 {html.escape(referee.display_name)} joined with your link! You've received {REFERRER_REWARD} coins.",
        )

    async def send_referral_link(self, user_id) -> None:
        user = await self.bot.store.get_user(user_id)
        if not user or not user.referral_code:
            return await self.bot.messenger.send_text(
                user_id, "Could not find your referral code. Please try creating a profile first."
            )
        if not self.bot.username:
            return await self.bot.messenger.send_text(
                user_id, "The bot is still starting up, please try again in a moment."
            )
        link = f"https://t.me/{self.bot.username}?start={user.referral_code}"
        await self.bot.messenger.send_text(
            user_id,
            "📢 <b>Your Referral Link</b>\n\n"
            f"Share this link with your friends. When a new user joins using your link, "
            f"you'll receive <b>{REFERRER_REWARD} coins</b>!\n\n<code>{link}</code>",
        )

    # --- Gifts ---

    async def transfer(self, sender_id, recipient_id, amount: int) -> User:
        sender_id, recipient_id = str(sender_id), str(recipient_id)
        async with self.bot.store.transaction(sender_id, recipient_id) as doc:
            sender = self._require_user(doc, sender_id)
            recipient = doc.get_user(recipient_id)
            if not recipient:
                raise NotFoundError("❌ User not found.")
            charge(sender, amount)
            recipient.coins += amount
            logger.info(f"Gift: {sender_id} -> {recipient_id} ({amount} coins)")
            return sender

    async def start_gift(self, user_id) -> None:
        user = await self.bot.store.get_user(user_id)
        if not user:
            return await self.bot.messenger.send_text(user_id, "Please create a profile first.")
        self.bot.sessions.set(user_id, GiftSession())
        await self.bot.messenger.send_text(user_id, "💝 Enter the User ID of the person you want to gift coins to.")

    async def handle_gift_message(self, msg: IncomingMessage, session: GiftSession) -> None:
        user_id = msg.user_id
        messenger = self.bot.messenger
        text = (msg.text or "").strip()

        if session.step is GiftStep.RECIPIENT:
            if not text:
                return await messenger.send_text(user_id, "❌ Please send the recipient's User ID.")
            if text == str(user_id):
                return await messenger.send_text(user_id, "❌ You can't gift coins to yourself. Send another User ID.")
            recipient = await self.bot.store.get_user(text)
            if not recipient:
                self.bot.sessions.clear(user_id)
                return await messenger.send_text(user_id, "❌ User not found.")
            session.recipient_id = recipient.id
            session.step = GiftStep.AMOUNT
            return await messenger.send_text(
                user_id, f"How many coins do you want to gift to {html.escape(recipient.display_name)}?"
            )

        if session.step is GiftStep.AMOUNT:
            try:
                amount = parse_amount(text)
            except ValidationError as e:
                return await messenger.send_text(user_id, e.message)
            sender = await self.bot.store.get_user(user_id)
            balance = sender.coins if sender else 0
            if amount > balance:
                self.bot.sessions.clear(user_id)
                return await messenger.send_text(user_id, InsufficientFundsError(amount, balance).message)
            session.amount = amount
            session.step = GiftStep.CONFIRM
            return await messenger.send_text(
                user_id,
                f"Send <b>{amount}</b> coins to <code>{session.recipient_id}</code>?",
                reply_markup=keyboards.gift_confirm(),
            )

        await messenger.send_text(user_id, "Please confirm or cancel the gift.", reply_markup=keyboards.gift_confirm())

    async def confirm_gift(self, user_id, session: GiftSession) -> None:
        if session.step is not GiftStep.CONFIRM:
            return
        self.bot.sessions.clear(user_id)
        try:
            sender = await self.transfer(user_id, session.recipient_id, session.amount)
        except BotError as e:
            return await self.bot.messenger.send_text(user_id, e.message)
        await self.bot.messenger.send_text(
            user_id, f"✅ Sent {session.amount} coins! Your new balance is {sender.coins}."
        )
        await self.bot.messenger.send_text(
            session.recipient_id,
            f"🎁 {html.escape(sender.display_name)} sent you {session.amount} coins!",
        )

    async def cancel_gift(self, user_id) -> None:
        self.bot.sessions.clear(user_id)
        await self.bot.messenger.send_text(user_id, "Gift cancelled.")

    # --- Admin grant ---

    async def grant(self, target_id, amount: int) -> User:
        if amount <= 0:
            raise ValidationError("❌ The amount must be a positive number.")
        async with self.bot.store.transaction(target_id) as doc:
            target = doc.get_user(target_id)
            if not target:
                raise NotFoundError("User ID not found.")
            target.coins += amount
            logger.info(f"Granted {amount} coins to {target.id}")
            return target
