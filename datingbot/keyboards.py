from typing import List

from tgram.types import (
    InlineKeyboardButton as Button,
    InlineKeyboardMarkup as Markup,
    KeyboardButton,
    ReplyKeyboardMarkup,
    ReplyKeyboardRemove,
)

from .actions import (
    AdminOp,
    AgeBucket,
    BrowseOp,
    EditOp,
    GenderOp,
    GiftOp,
    LikeOp,
    Menu,
    NoopOp,
    ProfileOp,
    ReportOp,
    SearchOp,
    StoreOp,
    callback,
)
from .models import (
    BOOST_COST,
    DAILY_BONUS,
    ROLE_ADMIN,
    ROLE_SUB_ADMIN,
    VIEWERS_COST,
    Report,
    User,
)

GENDER_LABELS = {
    GenderOp.MALE: "👨 Male",
    GenderOp.FEMALE: "👩 Female",
    GenderOp.OTHER: "🌈 Other",
}

EDIT_LABELS = {
    EditOp.NAME: "Name",
    EditOp.AGE: "Age",
    EditOp.GENDER: "Gender",
    EditOp.CITY: "City",
    EditOp.INTERESTS: "Interests",
    EditOp.LIMITS: "Limits",
    EditOp.EXTRA_INFO: "Extra Info",
    EditOp.PHOTOS: "Photos",
}


def reply_keyboard(rows: List[List[Menu]]) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=item.value) for item in row] for row in rows],
        resize_keyboard=True,
    )


def remove_keyboard() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()


def main_menu(role: str) -> ReplyKeyboardMarkup:
    rows = [
        [Menu.MY_PROFILE, Menu.SEARCH],
        [Menu.MATCHES, Menu.COIN_STORE],
        [Menu.REFERRAL],
    ]
    if role == ROLE_ADMIN:
        rows.append([Menu.ADMIN_PANEL])
    elif role == ROLE_SUB_ADMIN:
        rows.append([Menu.SUB_ADMIN_PANEL])
    return reply_keyboard(rows)


def create_profile_menu() -> ReplyKeyboardMarkup:
    return reply_keyboard([[Menu.CREATE_PROFILE]])


def admin_menu() -> ReplyKeyboardMarkup:
    return reply_keyboard(
        [
            [Menu.STATS, Menu.MANAGE_USERS],
            [Menu.LIST_USERS, Menu.MANAGE_REPORTS],
            [Menu.MANAGE_SUB_ADMINS, Menu.GRANT_COINS],
            [Menu.BROADCAST],
            [Menu.BACK],
        ]
    )


def sub_admin_menu() -> ReplyKeyboardMarkup:
    return reply_keyboard([[Menu.VIEW_USERS], [Menu.BACK]])


def gender_choice() -> Markup:
    return Markup([[Button(text=label, callback_data=callback(op)) for op, label in GENDER_LABELS.items()]])


def age_buckets() -> Markup:
    return Markup([[Button(text=bucket.value, callback_data=callback(bucket)) for bucket in AgeBucket]])


def skip_interests() -> Markup:
    return Markup([[Button(text="⏭ Skip", callback_data=callback(SearchOp.SKIP_INTERESTS))]])


def profile_actions(viewer_count: int) -> Markup:
    return Markup(
        [
            [Button(text="✏️ Edit Profile", callback_data=callback(ProfileOp.EDIT))],
            [Button(text=f"👀 Who Viewed Me ({viewer_count})", callback_data=callback(ProfileOp.VIEWERS))],
        ]
    )


def edit_fields() -> Markup:
    buttons = [Button(text=label, callback_data=callback(op)) for op, label in EDIT_LABELS.items()]
    return Markup([buttons[i:i + 2] for i in range(0, len(buttons), 2)])


def photos_done() -> Markup:
    return Markup([[Button(text="✅ Done", callback_data=callback(EditOp.DONE))]])


def result_card(candidate_id: str, index: int, total: int) -> Markup:
    return Markup(
        [
            [
                Button(text="⬅️", callback_data=callback(BrowseOp.PREV)),
                Button(text=f"{index + 1}/{total}", callback_data=callback(NoopOp.NOOP)),
                Button(text="➡️", callback_data=callback(BrowseOp.NEXT)),
            ],
            [
                Button(text="❤️ Like", callback_data=callback(LikeOp.SEND, candidate_id)),
                Button(text="🚩 Report", callback_data=callback(ReportOp.FILE, candidate_id)),
            ],
        ]
    )


def view_profile_button(user_id: str, label: str) -> Button:
    return Button(text=label, callback_data=callback(ProfileOp.VIEW, user_id))


def match_list(matches: List[User]) -> Markup:
    return Markup([[view_profile_button(u.id, f"👤 {u.display_name}")] for u in matches])


def coin_store() -> Markup:
    return Markup(
        [
            [Button(text=f"🎁 Daily Bonus (+{DAILY_BONUS})", callback_data=callback(StoreOp.DAILY))],
            [Button(text=f"🚀 Boost Profile 24h ({BOOST_COST})", callback_data=callback(StoreOp.BOOST))],
            [Button(text=f"👀 Who Viewed Me ({VIEWERS_COST})", callback_data=callback(StoreOp.VIEWERS))],
            [Button(text="💝 Gift Coins", callback_data=callback(StoreOp.GIFT))],
        ]
    )


def gift_confirm() -> Markup:
    return Markup(
        [
            [
                Button(text="✅ Confirm", callback_data=callback(GiftOp.CONFIRM)),
                Button(text="❌ Cancel", callback_data=callback(GiftOp.CANCEL)),
            ]
        ]
    )


def admin_user_card(user: User, full_admin: bool) -> Markup:
    rows = []
    if full_admin:
        rows.append([Button(text="💰 Grant Coins", callback_data=callback(AdminOp.GRANT, user.id))])
    if user.banned:
        rows.append([Button(text="✅ Unban", callback_data=callback(AdminOp.UNBAN, user.id))])
    else:
        rows.append([Button(text="🚫 Ban", callback_data=callback(AdminOp.BAN, user.id))])
    return Markup(rows)


def users_page(users: List[User], page: int, pages: int) -> Markup:
    rows = [
        [Button(text=f"{'🚫 ' if u.banned else ''}{u.display_name} ({u.id})", callback_data=callback(AdminOp.USER, u.id))]
        for u in users
    ]
    nav = []
    if page > 0:
        nav.append(Button(text="⬅️", callback_data=callback(AdminOp.USERS, page - 1)))
    nav.append(Button(text=f"{page + 1}/{max(pages, 1)}", callback_data=callback(NoopOp.NOOP)))
    if page + 1 < pages:
        nav.append(Button(text="➡️", callback_data=callback(AdminOp.USERS, page + 1)))
    rows.append(nav)
    return Markup(rows)


def sub_admin_manage() -> Markup:
    return Markup(
        [
            [Button(text="➕ Promote User", callback_data=callback(AdminOp.PROMOTE))],
            [Button(text="➖ Demote User", callback_data=callback(AdminOp.DEMOTE))],
        ]
    )


def reports_list(reports: List[Report]) -> Markup:
    return Markup(
        [[Button(text=f"🚨 #{r.id} → {r.reported_id}", callback_data=callback(AdminOp.REPORT, r.id))] for r in reports]
    )


def report_detail(report: Report) -> Markup:
    rows = []
    if report.is_open:
        rows.append([Button(text="✅ Mark Resolved", callback_data=callback(AdminOp.RESOLVE, report.id))])
    rows.append([Button(text="👤 Reported User", callback_data=callback(AdminOp.USER, report.reported_id))])
    rows.append([Button(text="🔙 Back", callback_data=callback(AdminOp.REPORTS))])
    return Markup(rows)
