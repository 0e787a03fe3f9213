"""
Email notifications over SMTP
Welcome credentials, password resets and low stock summaries for supervisors
"""
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from html import escape
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from app.inventory.low_stock import LowStockItem, summarize
from core.config import AppSettings, app_settings

logger = logging.getLogger(__name__)

APP_TITLE = "Inventory System"


@dataclass(frozen=True)
class Sender:
    name: str
    email: str


@dataclass(frozen=True)
class Recipient:
    name: str
    email: str


# ==================== MESSAGE BUILDERS ====================

def _wrap_html(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head>"
        "<body style=\"font-family: 'Segoe UI', Tahoma, sans-serif; line-height: 1.6;\">"
        f"<h2>{escape(title)}</h2>{body}"
        f"<p style=\"color: #666; font-size: 13px;\">This is an automated message from the {APP_TITLE}.</p>"
        "</body></html>"
    )


def credentials_email(username: str, password: str) -> Tuple[str, str, str]:
    subject = f"Welcome to the {APP_TITLE} - Your Account Details"
    text = (
        "Dear User,\n\n"
        f"An account has been created for you on the {APP_TITLE}.\n\n"
        f"Username: {username}\n"
        f"Temporary Password: {password}\n\n"
        "Please keep these credentials safe.\n"
    )
    html = _wrap_html(
        "Welcome",
        "<p>Dear User,</p>"
        f"<p>An account has been created for you on the {APP_TITLE}.</p>"
        f"<p><strong>Username:</strong> {escape(username)}<br>"
        f"<strong>Temporary Password:</strong> {escape(password)}</p>",
    )
    return subject, text, html


def password_reset_email(username: str, password: str) -> Tuple[str, str, str]:
    subject = f"{APP_TITLE} - Password Reset Confirmation"
    text = (
        "Dear User,\n\n"
        "Your password has been reset.\n\n"
        f"Username: {username}\n"
        f"New Temporary Password: {password}\n"
    )
    html = _wrap_html(
        "Password Reset Confirmation",
        "<p>Dear User,</p><p>Your password has been reset.</p>"
        f"<p><strong>Username:</strong> {escape(username)}<br>"
        f"<strong>New Temporary Password:</strong> {escape(password)}</p>",
    )
    return subject, text, html


def _item_rows(items: Sequence[LowStockItem]) -> str:
    return "".join(
        f"<tr><td>{escape(item.name or '')}</td><td>{item.quantity}</td><td>{item.threshold}</td></tr>"
        for item in items
    )


def _item_table(items: Sequence[LowStockItem], heading: str, color: str) -> str:
    if not items:
        return ""
    return (
        f"<h3 style=\"color: {color};\">{escape(heading)} ({len(items)})</h3>"
        "<table border=\"1\" cellpadding=\"6\" cellspacing=\"0\">"
        "<tr><th>Item</th><th>Quantity</th><th>Threshold</th></tr>"
        f"{_item_rows(items)}</table>"
    )


def low_stock_email(
    supervisor_name: str,
    low_items: Iterable[LowStockItem],
    sent_at: Optional[datetime] = None,
) -> Tuple[str, str, str]:
    summary = summarize(low_items)
    critical, low = summary["critical"], summary["low"]
    sent_at = sent_at or datetime.now()

    subject = "Low Stock Alert Summary"
    intro = "The following items have reached low stock levels. Please review and restock as needed."
    if critical:
        subject = f"Critical Stock Alert: {len(critical)} Item(s) Out of Stock!"
        intro = (
            f"{len(critical)} item(s) are out of stock, and {len(low)} more are low. "
            "Immediate action required!"
        )

    lines = [f"Dear {supervisor_name},", "", intro, ""]
    for heading, items in (("Out of Stock", critical), ("Low Stock", low)):
        if not items:
            continue
        lines.append(f"{heading}:")
        lines.extend(f"  - {item.name}: {item.quantity} (threshold {item.threshold})" for item in items)
        lines.append("")
    lines.append(f"Sent {sent_at.strftime('%A %d/%m/%Y at %H:%M')}")

    html = _wrap_html(
        "Critical Stock Alert" if critical else "Low Stock Alert",
        f"<p>Dear <strong>{escape(supervisor_name)}</strong>,</p><p>{escape(intro)}</p>"
        + _item_table(critical, "Out of Stock", "#d32f2f")
        + _item_table(low, "Low Stock", "#f57c00")
        + f"<p>Sent {sent_at.strftime('%A %d/%m/%Y at %H:%M')}</p>",
    )
    return subject, "\n".join(lines), html


# ==================== SMTP DELIVERY ====================

class EmailService:
    def __init__(
        self,
        settings: AppSettings = app_settings,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        self._settings = settings
        self._smtp_factory = smtp_factory

    def default_sender(self) -> Sender:
        return Sender(name=APP_TITLE, email=self._settings.smtp_user or "inventory@localhost")

    def build_message(
        self, to: str, subject: str, text: str, html: str, sender: Optional[Sender] = None
    ) -> MIMEMultipart:
        sender = sender or self.default_sender()
        message = MIMEMultipart("alternative")
        message["From"] = formataddr((sender.name, sender.email))
        message["To"] = to
        message["Subject"] = subject
        message.attach(MIMEText(text, "plain", "utf-8"))
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    def send(self, message: MIMEMultipart) -> bool:
        """Deliver one message; failures are logged and reported as False"""
        if not self._settings.smtp_configured:
            logger.warning(f"SMTP is not configured, skipping email '{message['Subject']}' to {message['To']}")
            return False

        try:
            with self._smtp_factory(
                self._settings.smtp_host,
                self._settings.smtp_port,
                timeout=self._settings.smtp_timeout,
            ) as server:
                if self._settings.smtp_use_tls:
                    server.starttls()
                server.login(self._settings.smtp_user, self._settings.smtp_password)
                server.send_message(message)
            logger.info(f"Email '{message['Subject']}' sent to {message['To']}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{message['Subject']}' to {message['To']}: {e}")
            return False

    def send_user_credentials(self, email: str, username: str, password: str, sender: Optional[Sender] = None) -> bool:
        subject, text, html = credentials_email(username, password)
        return self.send(self.build_message(email, subject, text, html, sender))

    def send_password_reset(self, email: str, username: str, password: str, sender: Optional[Sender] = None) -> bool:
        subject, text, html = password_reset_email(username, password)
        return self.send(self.build_message(email, subject, text, html, sender))

    def send_low_stock_alert(
        self,
        supervisors: Sequence[Recipient],
        low_items: Sequence[LowStockItem],
        sender: Optional[Sender] = None,
    ) -> int:
        """Send the low stock summary to every supervisor, returns how many were delivered"""
        if not supervisors:
            logger.warning("No supervisors configured for low stock alerts")
            return 0
        if not low_items:
            logger.info("No low stock items to alert about")
            return 0

        sent_at = datetime.now()
        delivered = 0
        for supervisor in supervisors:
            subject, text, html = low_stock_email(supervisor.name, low_items, sent_at)
            if self.send(self.build_message(supervisor.email, subject, text, html, sender)):
                delivered += 1
        logger.info(f"Low stock alert delivered to {delivered}/{len(supervisors)} supervisor(s)")
        return delivered


email_service = EmailService()


def recipients_from(rows: Iterable) -> List[Recipient]:
    return [Recipient(name=row.name, email=row.email) for row in rows]
