"""
Notify module for the Mentari Notifier pipeline.

This module handles the outgoing notification:
- Rendering the incomplete-items summary text sent to the student
- Building the structured webhook payload
- Delivering the payload to the configured webhook (n8n → WhatsApp)

Delivery never raises. Transport, HTTP status and serialization failures
are logged and reported as False so the next trigger can try again.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from mentari_notifier.parse import PendingItem, first_present
from mentari_notifier.utils import get_logger, to_text


logger = get_logger("notify")

DEFAULT_TIMEOUT = 30  # seconds
MAX_LISTED_ITEMS = 20
PAYLOAD_TYPE = "incomplete_summary"
DEFAULT_RECIPIENT_NAME = "Mahasiswa"
RECIPIENT_NAME_FIELDS = ("fullname", "name", "username")
USER_AGENT = "MentariNotifier/1.0"


def get_recipient_name(user: Any) -> str:
    """
    Resolve the greeting name from the portal user info.

    Args:
        user: Decoded user info (may be None or malformed).

    Returns:
        Display name, or the generic student label.
    """
    if not isinstance(user, dict):
        return DEFAULT_RECIPIENT_NAME
    return to_text(first_present(user, RECIPIENT_NAME_FIELDS, DEFAULT_RECIPIENT_NAME))


def format_item_line(index: int, item: PendingItem) -> str:
    """
    Format one numbered summary entry.

    Args:
        index: 1-based position in the summary.
        item: Pending item to render.

    Returns:
        Entry text, with the link on a continuation line when known.
    """
    section = item.section_name or "Pertemuan"
    line = f"{index}. [{section}] {item.kind} - {item.title}"
    if item.url:
        line += f"\n- Link: {item.url}"
    return line


def format_message(user: Any, items: List[PendingItem]) -> str:
    """
    Format the WhatsApp summary text.

    Lists at most MAX_LISTED_ITEMS entries, followed by a count of the
    omitted remainder.

    Args:
        user: Decoded user info used for the greeting.
        items: Pending items in display order.

    Returns:
        Message text.
    """
    name = get_recipient_name(user)

    if not items:
        return f"Tidak ada tugas tertunda untuk {name}."

    lines = [f"Halo {name}, ada {len(items)} item belum selesai:"]
    lines.extend(
        format_item_line(i, item)
        for i, item in enumerate(items[:MAX_LISTED_ITEMS], 1)
    )

    if len(items) > MAX_LISTED_ITEMS:
        lines.append(f"Dan {len(items) - MAX_LISTED_ITEMS} lagi...")

    return "\n".join(lines)


def format_timestamp(moment: Optional[datetime] = None) -> str:
    """
    Format a UTC timestamp as ISO-8601 with milliseconds and a Z suffix.

    Args:
        moment: Time to format; defaults to now. Naive values are taken as UTC.
    """
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)

    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def build_payload(
    phone: str,
    user: Any,
    source: str,
    items: List[PendingItem],
    message: str,
    timestamp: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Build the webhook payload for an incomplete-items summary.

    Args:
        phone: Recipient contact handle.
        user: Decoded user info; name and NIM are forwarded.
        source: Trigger tag ("bootstrap" or "course_update").
        items: Pending items included in the summary.
        message: Formatted message text.
        timestamp: Evaluation time; defaults to now.

    Returns:
        JSON-serializable payload dictionary.
    """
    user_record = user if isinstance(user, dict) else {}

    return {
        "type": PAYLOAD_TYPE,
        "phone": phone,
        "user": {
            "name": user_record.get("fullname"),
            "nim": user_record.get("username"),
        },
        "source": source,
        "count": len(items),
        "items": [item.to_dict() for item in items],
        "message": message,
        "timestamp": format_timestamp(timestamp),
    }


def create_webhook_session() -> requests.Session:
    """
    Create a requests session for webhook delivery.

    No retry adapter is mounted: a failed delivery is retried by the
    next evaluation, not here.

    Returns:
        Configured requests.Session instance.
    """
    session = requests.Session()
    session.headers.update({
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    })
    return session


def send_to_webhook(
    url: str,
    payload: Dict[str, Any],
    session: Optional[requests.Session] = None,
    timeout: int = DEFAULT_TIMEOUT
) -> bool:
    """
    POST a JSON payload to the notification webhook.

    Args:
        url: Webhook endpoint. An empty URL counts as a failed delivery.
        payload: JSON-serializable payload.
        session: Optional session to reuse; a fresh one is created otherwise.
        timeout: Request timeout in seconds.

    Returns:
        True if the webhook answered with a 2xx status, False otherwise.
    """
    if not url:
        logger.warning("Webhook URL is not configured, skipping delivery")
        return False

    try:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        logger.error(f"Could not serialize webhook payload: {e}")
        return False

    owns_session = session is None
    if session is None:
        session = create_webhook_session()

    try:
        response = session.post(
            url,
            data=body,
            headers={"Content-Type": "application/json"},
            timeout=timeout
        )

        if 200 <= response.status_code < 300:
            logger.info(f"Webhook accepted notification (HTTP {response.status_code})")
            return True

        logger.warning(f"Webhook returned HTTP {response.status_code}")
        return False

    except requests.exceptions.Timeout:
        logger.warning(f"Timeout delivering to webhook {url}")
        return False

    except requests.exceptions.ConnectionError as e:
        logger.warning(f"Connection error delivering to webhook: {e}")
        return False

    except requests.exceptions.RequestException as e:
        logger.error(f"Webhook request failed: {e}")
        return False

    finally:
        if owns_session:
            session.close()
