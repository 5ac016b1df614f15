# examdesk_platform/notifications/services.py
import logging

import requests
from django.conf import settings
from django.core.mail import send_mail

from .models import Notification

logger = logging.getLogger(__name__)


def create_notification(user, title, message, kind=Notification.Kind.GENERAL, link=''):
    return Notification.objects.create(user=user, kind=kind, title=title, message=message, link=link)


def send_email(to_email, subject, body):
    """Send a plain-text email. Errors propagate to the caller."""
    sent = send_mail(
        subject=subject,
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[to_email],
        fail_silently=False,
    )
    logger.info("Email '%s' sent to %s", subject, to_email)
    return sent


def send_sms(phone_number, message):
    """
    Deliver an SMS through the configured HTTP gateway.
    Returns False when no gateway is configured; raises on transport errors.
    """
    gateway = settings.SMS_GATEWAY_URL
    if not gateway:
        logger.debug("SMS gateway not configured, skipping SMS to %s", phone_number)
        return False

    headers = {}
    if settings.SMS_GATEWAY_TOKEN:
        headers["Authorization"] = f"Bearer {settings.SMS_GATEWAY_TOKEN}"

    resp = requests.post(
        gateway,
        json={"to": phone_number, "message": message},
        headers=headers,
        timeout=settings.SIDE_EFFECT_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    return True
