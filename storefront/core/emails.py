"""
Transactional email through Django's mail framework.

Production points the SMTP backend at the email provider's relay; tests get
the locmem backend from the Django test runner.
"""
import logging
from smtplib import SMTPException

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils.html import escape

logger = logging.getLogger(__name__)

BRAND_NAME = 'Bayt Organic'


def send_email(to, subject, text, html=None, from_email=None) -> bool:
    """Send one message; returns False instead of raising on delivery failure"""
    message = EmailMultiAlternatives(
        subject=subject,
        body=text,
        from_email=from_email or settings.DEFAULT_FROM_EMAIL,
        to=[to],
    )
    if html:
        message.attach_alternative(html, 'text/html')
    try:
        message.send(fail_silently=False)
    except (SMTPException, OSError) as e:
        logger.error(f"Failed to send email '{subject}' to {to}: {str(e)}", exc_info=True)
        return False
    logger.info(f"Sent email '{subject}' to {to}")
    return True


def _wrap_html(name, paragraphs, link_label, link_url):
    body = ''.join(f'<p>{escape(p)}</p>' for p in paragraphs)
    return (
        f'<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2>Hello {escape(name)},</h2>{body}'
        f'<p><a href="{escape(link_url)}">{escape(link_label)}</a></p>'
        f'<p style="word-break: break-all; font-size: 14px;">{escape(link_url)}</p>'
        f'<p style="color: #666; font-size: 12px;">{BRAND_NAME}</p>'
        f'</div>'
    )


def send_verification_email(email, token, name) -> bool:
    url = f"{settings.SITE_URL}/api/v1/auth/verify/?token={token}"
    hours = settings.VERIFICATION_TOKEN_HOURS
    paragraphs = [
        f"Thank you for registering with {BRAND_NAME}. Please verify your email address using the link below.",
        "If you did not create an account, please ignore this email.",
        f"This link will expire in {hours} hours.",
    ]
    text = f"Hello {name},\n\n" + "\n\n".join(paragraphs[:1] + [url] + paragraphs[1:]) + f"\n\n{BRAND_NAME} Team"
    return send_email(email, f"Verify your {BRAND_NAME} account", text,
                      _wrap_html(name, paragraphs, 'Verify Email', url))


def send_password_reset_email(email, token, name) -> bool:
    url = f"{settings.SITE_URL}/auth/reset-password?token={token}"
    hours = settings.PASSWORD_RESET_TOKEN_HOURS
    paragraphs = [
        "We received a request to reset your password. Use the link below to choose a new one.",
        "If you did not request a password reset, you can ignore this email.",
        f"This link will expire in {hours} hour{'s' if hours != 1 else ''}.",
    ]
    text = f"Hello {name},\n\n" + "\n\n".join(paragraphs[:1] + [url] + paragraphs[1:]) + f"\n\n{BRAND_NAME} Team"
    return send_email(email, f"Reset your {BRAND_NAME} password", text,
                      _wrap_html(name, paragraphs, 'Reset Password', url))
