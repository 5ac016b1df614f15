# examdesk_platform/notifications/realtime.py
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

EXAM_SUBMITTED = "exam:submitted"
LEADERBOARD_UPDATE = "leaderboard:update"


def publish_event(event, data):
    """
    Push an event to the websocket gateway, which fans it out to connected
    browsers. Returns False when no gateway is configured.
    """
    base_url = settings.REALTIME_GATEWAY_URL
    if not base_url:
        logger.debug("Realtime gateway not configured, dropping %s", event)
        return False

    headers = {}
    if settings.REALTIME_GATEWAY_TOKEN:
        headers["Authorization"] = f"Bearer {settings.REALTIME_GATEWAY_TOKEN}"

    resp = requests.post(
        f"{base_url.rstrip('/')}/events",
        json={"event": event, "data": data},
        headers=headers,
        timeout=settings.SIDE_EFFECT_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    logger.debug("Published %s", event)
    return True
