#!/usr/bin/env python3
"""
Main orchestration module for the Mentari Notifier pipeline.

This module coordinates one evaluation:
load config → extract → format → fingerprint → dedup check → send

and exposes the two triggers used by the host application:
- bootstrap(): one delayed evaluation per page lifecycle
- on_course_data_updated(): immediate evaluation after a snapshot refresh

The two triggers are not mutually exclusive. If both run before either
stores its fingerprint the same summary can be delivered twice.
"""

import os
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from mentari_notifier.compare import build_fingerprint, is_duplicate
from mentari_notifier.notify import build_payload, format_message, send_to_webhook
from mentari_notifier.parse import DEFAULT_BASE_URL, PendingItem, extract_pending_items
from mentari_notifier.storage import (
    DEFAULT_STATE_PATH,
    KEY_COURSE_DATA,
    KEY_USER_INFO,
    JsonFileStore,
    NotifierConfig,
    StateStore,
    get_last_fingerprint,
    load_config,
    read_json_value,
    save_last_fingerprint,
)
from mentari_notifier.utils import get_env_var, get_logger, setup_logging


# Exit codes
EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Trigger tags
SOURCE_BOOTSTRAP = "bootstrap"
SOURCE_COURSE_UPDATE = "course_update"

BOOTSTRAP_DELAY_SECONDS = 2.0


class Outcome(str, Enum):
    """Terminal states of one evaluation."""
    DISABLED = "disabled"
    NO_DATA = "no_data"
    SKIPPED = "skipped"
    DELIVERED = "delivered"
    FAILED = "failed"
    DRY_RUN = "dry_run"
    SEND = "send"  # planned, not yet dispatched


@dataclass
class NotificationPlan:
    """
    Decision of a single evaluation, before any I/O.

    Attributes:
        outcome: Outcome.SEND when a dispatch is needed, otherwise the
                 terminal outcome (disabled, no data, skipped).
        fingerprint: Fingerprint of the composed message, if one was built.
        payload: Webhook payload when outcome is Outcome.SEND.
        items: Extracted pending items.
    """
    outcome: Outcome
    fingerprint: Optional[str] = None
    payload: Optional[Dict[str, Any]] = None
    items: List[PendingItem] = field(default_factory=list)


def plan_notification(
    config: NotifierConfig,
    snapshot: Any,
    user: Any,
    last_fingerprint: Optional[str],
    source: str,
    now: Optional[datetime] = None,
    base_url: str = DEFAULT_BASE_URL
) -> NotificationPlan:
    """
    Decide what a single evaluation should do.

    Pure function of its inputs: no store access and no network.

    Args:
        config: Notifier configuration.
        snapshot: Decoded course snapshot (None if absent).
        user: Decoded user info (None if absent).
        last_fingerprint: Fingerprint of the last delivered notification.
        source: Trigger tag recorded in the payload.
        now: Evaluation time for the payload timestamp.
        base_url: Portal base URL for synthesized links.

    Returns:
        NotificationPlan describing the outcome.
    """
    logger = get_logger("main")

    if not config.enabled or not config.has_recipient:
        logger.debug("Notifier disabled or no recipient configured")
        return NotificationPlan(outcome=Outcome.DISABLED)

    if not isinstance(snapshot, list) or not snapshot:
        logger.debug("No cached course data available")
        return NotificationPlan(outcome=Outcome.NO_DATA)

    items = extract_pending_items(snapshot, base_url) if config.include_incomplete else []
    message = format_message(user, items)
    fingerprint = build_fingerprint(config.phone, message)

    if is_duplicate(fingerprint, last_fingerprint):
        logger.info("Summary unchanged since last delivery, skipping")
        return NotificationPlan(outcome=Outcome.SKIPPED, fingerprint=fingerprint, items=items)

    payload = build_payload(
        phone=config.phone,
        user=user,
        source=source,
        items=items,
        message=message,
        timestamp=now
    )

    return NotificationPlan(
        outcome=Outcome.SEND,
        fingerprint=fingerprint,
        payload=payload,
        items=items
    )


def evaluate_and_notify(
    store: StateStore,
    source: str,
    session: Optional[requests.Session] = None,
    now: Optional[datetime] = None,
    base_url: str = DEFAULT_BASE_URL,
    dry_run: bool = False
) -> Outcome:
    """
    Run one evaluation against the store and deliver if needed.

    The stored fingerprint advances only after the webhook confirms
    delivery, so a failed send is retried by the next trigger.

    Args:
        store: Key-value store with config, snapshot, user info and state.
        source: Trigger tag ("bootstrap" or "course_update").
        session: Optional requests session for the webhook call.
        now: Evaluation time; defaults to now.
        base_url: Portal base URL for synthesized links.
        dry_run: If True, log the payload instead of sending it.

    Returns:
        The terminal outcome of the evaluation.
    """
    logger = get_logger("main")

    config = load_config(store)
    if not config.enabled or not config.has_recipient:
        logger.debug(f"[{source}] Notifier disabled or no recipient configured")
        return Outcome.DISABLED

    plan = plan_notification(
        config=config,
        snapshot=read_json_value(store, KEY_COURSE_DATA),
        user=read_json_value(store, KEY_USER_INFO),
        last_fingerprint=get_last_fingerprint(store),
        source=source,
        now=now,
        base_url=base_url
    )

    if plan.outcome != Outcome.SEND:
        return plan.outcome

    assert plan.payload is not None and plan.fingerprint is not None

    if dry_run:
        logger.info(f"[DRY RUN] Would send {len(plan.items)} item(s) to webhook")
        logger.debug(f"[DRY RUN] Message:\n{plan.payload['message']}")
        return Outcome.DRY_RUN

    logger.info(f"[{source}] Sending summary with {len(plan.items)} item(s)")

    if not send_to_webhook(config.webhook_url, plan.payload, session=session):
        logger.warning(f"[{source}] Delivery failed, will retry on next trigger")
        return Outcome.FAILED

    if not save_last_fingerprint(store, plan.fingerprint):
        logger.warning(
            f"[{source}] Summary delivered but fingerprint not stored, "
            f"the same summary will be sent again on the next trigger"
        )
        return Outcome.DELIVERED

    logger.info(f"[{source}] Summary delivered")
    return Outcome.DELIVERED


def _run_safely(store: StateStore, source: str, **kwargs: Any) -> Optional[Outcome]:
    """Run an evaluation, logging instead of raising into the host."""
    logger = get_logger("main")
    try:
        return evaluate_and_notify(store, source, **kwargs)
    except Exception as e:
        logger.exception(f"[{source}] Unexpected error during evaluation: {e}")
        return None


def bootstrap(
    store: StateStore,
    delay: float = BOOTSTRAP_DELAY_SECONDS,
    **kwargs: Any
) -> threading.Timer:
    """
    Schedule a single deferred evaluation tagged "bootstrap".

    Args:
        store: Key-value store passed to the evaluation.
        delay: Seconds to wait before evaluating.
        **kwargs: Extra arguments for evaluate_and_notify.

    Returns:
        The started timer; call cancel() to drop the pending run.
    """
    timer = threading.Timer(delay, _run_safely, args=(store, SOURCE_BOOTSTRAP), kwargs=kwargs)
    timer.daemon = True
    timer.start()
    get_logger("main").debug(f"Bootstrap evaluation scheduled in {delay}s")
    return timer


def on_course_data_updated(store: StateStore, **kwargs: Any) -> Optional[Outcome]:
    """
    Evaluate immediately after the cached course snapshot changed.

    Returns:
        The terminal outcome, or None if the evaluation crashed.
    """
    return _run_safely(store, SOURCE_COURSE_UPDATE, **kwargs)


def main() -> int:
    """
    Main entry point: run one evaluation against the JSON state file.

    Returns:
        Exit code for the process.
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    setup_logging(log_level)
    logger = get_logger("main")

    dry_run = os.environ.get("DRY_RUN", "").lower() in ("true", "1", "yes")
    if dry_run:
        logger.info("Running in DRY RUN mode - webhook will not be called")

    state_path = get_env_var("NOTIFIER_STATE_PATH", required=False, default=DEFAULT_STATE_PATH)
    source = get_env_var("NOTIFIER_SOURCE", required=False, default=SOURCE_COURSE_UPDATE)
    base_url = get_env_var("MENTARI_BASE_URL", required=False, default=DEFAULT_BASE_URL)

    assert state_path is not None and source is not None and base_url is not None

    store = JsonFileStore(state_path)

    try:
        outcome = evaluate_and_notify(store, source, base_url=base_url, dry_run=dry_run)
        logger.info(f"Evaluation finished: {outcome.value}")
        return EXIT_SUCCESS

    except KeyboardInterrupt:
        logger.warning("Evaluation interrupted by user")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception(f"Unexpected error in pipeline: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
