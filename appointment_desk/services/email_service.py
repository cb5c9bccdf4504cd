import logging
import smtplib
from datetime import date
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from appointment_desk.core.config import settings

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_request_decision_html(
    recipient_name: str,
    status: str,
    day: date,
    start_time: str,
    end_time: str,
    reason: str | None,
) -> str:
    """Build HTML body for an approved/rejected request."""
    date_str = day.strftime("%A, %B %d, %Y")
    reason_section = ""
    if reason:
        reason_section = f'<p style="margin:0 0 16px 0;color:#6b7280;font-size:14px;">{_html_escape(reason)}</p>'
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Appointment Request {status.title()}</title></head>
<body style="margin:0;padding:24px;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <div style="max-width:560px;margin:0 auto;background:#ffffff;border-radius:12px;padding:32px;">
    <h1 style="margin:0 0 8px 0;font-size:22px;color:#111827;">Appointment Request {status.title()}</h1>
    <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">
      Dear {recipient_name or 'there'}, your appointment request with the
      {_html_escape(settings.decision_maker_title)} has been {status}.
    </p>
    <p style="margin:0 0 8px 0;font-size:16px;font-weight:600;color:#111827;">{date_str}, {start_time} – {end_time}</p>
    {reason_section}
    <p style="margin:24px 0 0 0;font-size:13px;color:#6b7280;">{_html_escape(settings.site_name)}</p>
  </div>
</body>
</html>
"""


def send_request_decision_email(
    to_email: str,
    recipient_name: str | None,
    status: str,
    day: date,
    start_time: str,
    end_time: str,
    reason: str | None = None,
) -> None:
    """Compose and send the outcome of a request decision (call from background task)."""
    subject = f"{settings.site_name} – Appointment Request {status.title()}"
    html = build_request_decision_html(
        recipient_name=_html_escape(recipient_name or ""),
        status=status,
        day=day,
        start_time=start_time,
        end_time=end_time,
        reason=reason,
    )
    _send_email_sync(to_email, subject, html)
