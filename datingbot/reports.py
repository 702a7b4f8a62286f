import html
import logging

from . import keyboards
from .errors import NotFoundError, ValidationError
from .models import REPORT_CLOSED, Report
from .sessions import ReportSession
from .updates import IncomingMessage

logger = logging.getLogger(__name__)


class ReportSystem:
    def __init__(self, bot):
        self.bot = bot

    async def start_report(self, user_id, reported_id) -> None:
        if str(user_id) == str(reported_id):
            return await self.bot.messenger.send_text(user_id, "You can't report yourself.")
        self.bot.sessions.set(user_id, ReportSession(reported_id=str(reported_id)))
        await self.bot.messenger.send_text(
            user_id, "🚩 Please tell us why you are reporting this profile. Send /cancel to abort."
        )

    async def file_report(self, reporter_id, reported_id, reason: str) -> Report:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("❌ Please describe the reason for your report.")
        async with self.bot.store.transaction(reporter_id) as doc:
            if not doc.get_user(reported_id):
                raise NotFoundError("This profile is no longer available.")
            report = Report.create(str(reporter_id), str(reported_id), reason, self.bot.now())
            doc.reports.append(report)
        logger.info(f"Report {report.id} filed by {reporter_id} against {reported_id}")
        return report

    async def handle_reason(self, msg: IncomingMessage, session: ReportSession) -> None:
        try:
            report = await self.file_report(msg.user_id, session.reported_id, msg.text)
        except ValidationError as e:
            return await self.bot.messenger.send_text(msg.user_id, e.message)
        except NotFoundError as e:
            self.bot.sessions.clear(msg.user_id)
            return await self.bot.messenger.send_text(msg.user_id, e.message)

        self.bot.sessions.clear(msg.user_id)
        await self.bot.messenger.send_text(msg.user_id, "✅ Thank you. Your report has been sent to the moderators.")
        await self.bot.messenger.send_text(
            self.bot.settings.admin_id,
            f"🚨 <b>New Report #{report.id}</b>\n\n"
            f"Reporter: <code>{report.reporter_id}</code>\n"
            f"Reported: <code>{report.reported_id}</code>\n"
            f"Reason: {html.escape(report.reason)}",
            reply_markup=keyboards.report_detail(report),
        )

    async def list_reports(self, chat_id) -> None:
        doc = await self.bot.store.load()
        pending = [r for r in doc.reports if r.is_open]
        if not pending:
            return await self.bot.messenger.send_text(chat_id, "✅ No open reports.")
        await self.bot.messenger.send_text(
            chat_id,
            f"🚨 <b>Open Reports ({len(pending)}/{len(doc.reports)})</b>",
            reply_markup=keyboards.reports_list(pending),
        )

    async def show_report(self, chat_id, report_id) -> None:
        doc = await self.bot.store.load()
        report = doc.get_report(report_id)
        if not report:
            return await self.bot.messenger.send_text(chat_id, "Report not found.")
        reporter = doc.get_user(report.reporter_id)
        reported = doc.get_user(report.reported_id)
        text = (
            f"🚨 <b>Report #{report.id}</b>\n\n"
            f"<b>Reporter:</b> {html.escape(reporter.display_name if reporter else 'Unknown User')} "
            f"(<code>{report.reporter_id}</code>)\n"
            f"<b>Reported:</b> {html.escape(reported.display_name if reported else 'Unknown User')} "
            f"(<code>{report.reported_id}</code>)\n"
            f"<b>Reason:</b> {html.escape(report.reason)}\n"
            f"<b>Filed:</b> {report.created_at}\n"
            f"<b>Status:</b> {report.status}"
        )
        await self.bot.messenger.send_text(chat_id, text, reply_markup=keyboards.report_detail(report))

    async def resolve(self, report_id) -> Report:
        """Close an open report. Closed reports stay closed."""
        async with self.bot.store.transaction() as doc:
            report = doc.get_report(report_id)
            if not report:
                raise NotFoundError("Report not found.")
            if not report.is_open:
                raise ValidationError(f"Report #{report.id} is already resolved.")
            report.status = REPORT_CLOSED
        logger.info(f"Report {report_id} resolved")
        return report
