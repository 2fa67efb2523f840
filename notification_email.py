"""
Notification Email Helper
Sends temporary-password and notification emails via SMTP.

Configuration via environment variables:
- MAIL_SERVER: SMTP host (e.g., mail.yourdomain.com)
- MAIL_PORT: SMTP port (default: 587 for TLS)
- MAIL_USERNAME: SMTP username
- MAIL_PASSWORD: SMTP password
- MAIL_USE_TLS: Use STARTTLS (default: True)
- MAIL_USE_SSL: Use SSL (default: False, use for port 465)
- MAIL_SENDER_NAME: Display name for sender (default: School Notifications)
- MAIL_DEBUG: Enable SMTP debug output (default: False)
"""

import os
import smtplib
import socket
import logging
from email.message import EmailMessage
from email.utils import formataddr
from typing import List, Tuple, Optional
from threading import Thread
from datetime import datetime
from html import escape

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def get_smtp_config():
    """Get SMTP configuration from environment (reload each time for testing)."""
    return {
        'host': os.getenv('MAIL_SERVER', 'localhost'),
        'port': int(os.getenv('MAIL_PORT', 587)),
        'user': os.getenv('MAIL_USERNAME', ''),
        'password': os.getenv('MAIL_PASSWORD', ''),
        'use_tls': os.getenv('MAIL_USE_TLS', 'True').lower() in ('true', '1', 'yes'),
        'use_ssl': os.getenv('MAIL_USE_SSL', 'False').lower() in ('true', '1', 'yes'),
        'sender_name': os.getenv('MAIL_SENDER_NAME', 'School Notifications'),
        'debug': os.getenv('MAIL_DEBUG', 'False').lower() in ('true', '1', 'yes'),
    }


def is_email_configured() -> bool:
    """Check if email sending is properly configured."""
    cfg = get_smtp_config()
    return bool(cfg['host'] and cfg['host'] != 'localhost' and cfg['user'] and cfg['password'])


def send_email(
    to_addrs: List[str],
    subject: str,
    html_body: str,
    plain_body: Optional[str] = None,
    reply_to: Optional[str] = None
) -> Tuple[bool, str]:
    """
    Send an email to one or more recipients.

    Args:
        to_addrs: List of recipient email addresses
        subject: Email subject
        html_body: HTML content of the email
        plain_body: Plain text fallback (optional)
        reply_to: Reply-to address (optional)

    Returns:
        Tuple of (success: bool, message: str)
    """
    cfg = get_smtp_config()

    if not is_email_configured():
        return False, "Email not configured. Set MAIL_SERVER, MAIL_USERNAME, MAIL_PASSWORD environment variables."

    to_addrs = [addr for addr in to_addrs or [] if addr and '@' in addr]
    if not to_addrs:
        return False, "No valid email addresses provided"

    start_time = datetime.now()
    msg = EmailMessage()
    msg['Subject'] = subject
    msg['From'] = formataddr((cfg['sender_name'], cfg['user']))
    msg['To'] = ', '.join(to_addrs)
    msg['Reply-To'] = reply_to or cfg['user']
    msg.set_content(plain_body or 'Please view this email in an HTML-compatible email client.')
    msg.add_alternative(html_body, subtype='html')

    try:
        if cfg['use_ssl']:
            server = smtplib.SMTP_SSL(cfg['host'], cfg['port'], timeout=30)
        else:
            server = smtplib.SMTP(cfg['host'], cfg['port'], timeout=30)
        with server:
            if cfg['debug']:
                server.set_debuglevel(2)
            if cfg['use_tls'] and not cfg['use_ssl']:
                server.starttls()
            server.login(cfg['user'], cfg['password'])
            server.send_message(msg)

        elapsed = (datetime.now() - start_time).total_seconds()
        logger.info(f"Email '{subject[:60]}' sent to {len(to_addrs)} recipient(s) in {elapsed:.2f}s")
        return True, f"Email sent to {len(to_addrs)} recipient(s)"

    except smtplib.SMTPAuthenticationError as e:
        logger.error(f"SMTP authentication failed: {str(e)}")
        return False, f"SMTP authentication failed: {str(e)}"
    except smtplib.SMTPException as e:
        logger.error(f"SMTP error: {str(e)}")
        return False, f"SMTP error: {str(e)}"
    except (socket.timeout, OSError) as e:
        logger.error(f"Could not reach SMTP server {cfg['host']}:{cfg['port']}: {str(e)}")
        return False, f"Could not connect to SMTP server: {str(e)}"


def send_email_async(to_addrs: List[str], subject: str, html_body: str, plain_body: Optional[str] = None):
    """
    Send an email in a background thread.

    Returns:
        The started Thread, or None when email is not configured
    """
    if not is_email_configured():
        logger.info(f"Email not configured; skipping '{subject[:60]}'")
        return None

    def _send():
        success, message = send_email(to_addrs, subject, html_body, plain_body)
        if not success:
            logger.warning(f"Background email failed: {message}")

    thread = Thread(target=_send, daemon=True)
    thread.start()
    return thread


def send_temp_password_email(to_email: str, full_name: str, temp_password: str):
    """Email the temporary password issued when a reset request is approved."""
    subject = "Your password has been reset"
    plain_body = (
        f"Hello {full_name},\n\n"
        f"Your password reset request was approved.\n"
        f"Temporary password: {temp_password}\n\n"
        f"You will be asked to choose a new password after logging in."
    )
    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px;">
        <h2>Password Reset Approved</h2>
        <p>Hello {escape(full_name or '')},</p>
        <p>Your password reset request was approved. Use this temporary password to log in:</p>
        <p style="font-size: 20px; font-weight: bold; letter-spacing: 2px;">{escape(temp_password)}</p>
        <p>You will be asked to choose a new password after logging in.</p>
    </div>
    """
    return send_email_async([to_email], subject, html_body, plain_body)


def send_notification_emails(title: str, message: str, recipients_with_emails: List[Tuple[str, str]], priority: str = 'normal'):
    """
    Email copies of an in-app notification.

    Args:
        title: Notification title
        message: Notification text
        recipients_with_emails: List of (recipient_name, email) tuples
        priority: Notification priority, shown in the subject when high or urgent

    Returns:
        The started Thread, or None when nothing is sent
    """
    emails = [email for _, email in recipients_with_emails if email]
    if not emails:
        return None

    prefix = f"[{priority.upper()}] " if priority in ('high', 'urgent') else ''
    html_body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px;">
        <h2>{escape(title)}</h2>
        <p>{escape(message).replace(chr(10), '<br>')}</p>
    </div>
    """
    return send_email_async(emails, f"{prefix}{title}", html_body, message)
