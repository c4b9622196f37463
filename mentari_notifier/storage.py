"""
Storage module for the Mentari Notifier pipeline.

This module handles:
- The key-value store interface the pipeline reads and writes through
- In-memory and JSON-file backed store implementations
- Loading typed notifier configuration from stringified store values
- Decoding JSON-encoded values (course snapshot, user info)
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from mentari_notifier.utils import get_logger, safe_read_json, safe_write_json


logger = get_logger("storage")

# Store keys shared with the portal page
KEY_COURSE_DATA = "mentari_course_data"
KEY_USER_INFO = "mentari_user_info"
KEY_ENABLED = "wa_notifier_enabled"
KEY_PHONE = "wa_notifier_phone"
KEY_WEBHOOK_URL = "wa_notifier_webhook"
KEY_INCLUDE_INCOMPLETE = "wa_notify_incomplete"
KEY_LAST_SENT_HASH = "wa_notifier_last_hash"

DEFAULT_STATE_PATH = "data/notifier_state.json"


class StateStore:
    """Minimal string key-value store, modelled on browser localStorage."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> bool:
        """Store a value; return False if it could not be persisted."""
        raise NotImplementedError


class MemoryStore(StateStore):
    """Dict-backed store for embedding and tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> bool:
        self._values[key] = value
        return True

    def __repr__(self) -> str:
        return f"MemoryStore(keys={sorted(self._values)})"


class JsonFileStore(StateStore):
    """
    Store persisted as a single JSON object on disk.

    The file is re-read on every access so values written by another
    process (e.g. the snapshot fetcher) are picked up. Writes are atomic.
    """

    def __init__(self, filepath: str = DEFAULT_STATE_PATH):
        self.filepath = filepath

    def _load(self) -> Dict[str, Any]:
        data = safe_read_json(self.filepath, default={})
        if not isinstance(data, dict):
            logger.warning(f"Unexpected data format in {self.filepath}, ignoring contents")
            return {}
        return data

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        if value is None:
            return None
        # Non-string values are stored by hand-edited files; keep their JSON form
        if not isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)
        return value

    def set(self, key: str, value: str) -> bool:
        data = self._load()
        data[key] = value

        success = safe_write_json(self.filepath, data)
        if not success:
            logger.error(f"Failed to persist '{key}' to {self.filepath}")

        return success

    def __repr__(self) -> str:
        return f"JsonFileStore(filepath={self.filepath})"


@dataclass
class NotifierConfig:
    """
    Runtime configuration read from the store.

    Attributes:
        enabled: Master switch for notifications.
        phone: Recipient contact handle (WhatsApp number), trimmed.
        webhook_url: Endpoint receiving the summary payload.
        include_incomplete: Whether incomplete items are listed at all.
    """
    enabled: bool = False
    phone: str = ""
    webhook_url: str = ""
    include_incomplete: bool = True

    @property
    def has_recipient(self) -> bool:
        return bool(self.phone)


def get_bool(store: StateStore, key: str, default: bool = False) -> bool:
    """
    Read a stringified boolean.

    Absent keys give the default; a present value is true only when it is
    exactly "true".
    """
    value = store.get(key)
    if value is None:
        return default
    return value == "true"


def get_string(store: StateStore, key: str, default: str = "") -> str:
    """Read a string value, falling back to default when absent."""
    value = store.get(key)
    return default if value is None else value


def load_config(store: StateStore) -> NotifierConfig:
    """
    Load notifier configuration from the store.

    Args:
        store: Key-value store holding the configuration keys.

    Returns:
        NotifierConfig populated from stored values and defaults.
    """
    config = NotifierConfig(
        enabled=get_bool(store, KEY_ENABLED),
        phone=get_string(store, KEY_PHONE).strip(),
        webhook_url=get_string(store, KEY_WEBHOOK_URL).strip(),
        include_incomplete=get_bool(store, KEY_INCLUDE_INCOMPLETE, True),
    )
    logger.debug(
        f"Loaded config: enabled={config.enabled}, "
        f"recipient={'set' if config.has_recipient else 'unset'}, "
        f"include_incomplete={config.include_incomplete}"
    )
    return config


def read_json_value(store: StateStore, key: str) -> Any:
    """
    Decode a JSON-encoded store value.

    Args:
        store: Key-value store.
        key: Key holding a JSON document.

    Returns:
        Decoded value, or None when the key is absent, empty or unparseable.
    """
    raw = store.get(key)
    if not raw:
        return None

    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Could not parse stored value for '{key}': {e}")
        return None


def get_last_fingerprint(store: StateStore) -> Optional[str]:
    """Return the fingerprint of the last delivered notification, if any."""
    return store.get(KEY_LAST_SENT_HASH)


def save_last_fingerprint(store: StateStore, fingerprint: str) -> bool:
    """
    Record the fingerprint of a successfully delivered notification.

    Returns:
        True if the store persisted the value, False otherwise.
    """
    success = store.set(KEY_LAST_SENT_HASH, fingerprint)
    if success:
        logger.debug(f"Stored last sent fingerprint {fingerprint}")
    return success
