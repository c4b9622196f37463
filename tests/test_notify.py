"""
Unit tests for the notify module.

Tests cover message formatting, payload building and webhook delivery.
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from mentari_notifier.notify import (
    MAX_LISTED_ITEMS,
    build_payload,
    create_webhook_session,
    format_item_line,
    format_message,
    format_timestamp,
    get_recipient_name,
    send_to_webhook,
)
from mentari_notifier.parse import DEFAULT_BASE_URL, PendingItem, extract_pending_items


WEBHOOK_URL = "https://n8n.example.com/webhook/mentari"


def make_item(i: int, url: str = "") -> PendingItem:
    return PendingItem(
        course_name="Course",
        course_code="C1",
        section_name=f"Pertemuan {i}",
        kind="PRE_TEST",
        title=f"Pretest {i}",
        url=url,
    )


@pytest.fixture
def sample_user():
    """User info as cached by the portal."""
    return {"fullname": "Budi Santoso", "username": "221011400123"}


@pytest.fixture
def ok_session():
    """Session whose POST succeeds."""
    session = MagicMock()
    session.post.return_value = Mock(status_code=200)
    return session


# =============================================================================
# Formatting Tests
# =============================================================================


class TestGetRecipientName:
    """Tests for greeting name resolution."""

    def test_fullname(self, sample_user):
        assert get_recipient_name(sample_user) == "Budi Santoso"

    def test_alias_fallbacks(self):
        """Test name, then username, then the generic label."""
        assert get_recipient_name({"name": "Sari"}) == "Sari"
        assert get_recipient_name({"username": "2210"}) == "2210"
        assert get_recipient_name({}) == "Mahasiswa"

    @pytest.mark.parametrize("user", [None, "Budi", 3, []])
    def test_malformed_user(self, user):
        assert get_recipient_name(user) == "Mahasiswa"


class TestFormatMessage:
    """Tests for the summary text."""

    def test_no_items(self, sample_user):
        """Test the single-line message for zero pending items."""
        assert format_message(sample_user, []) == "Tidak ada tugas tertunda untuk Budi Santoso."

    def test_no_items_without_user(self):
        assert format_message(None, []) == "Tidak ada tugas tertunda untuk Mahasiswa."

    def test_header_and_lines(self, sample_user):
        """Test header and numbered entries."""
        items = [make_item(1), make_item(2)]

        message = format_message(sample_user, items)

        assert message.split("\n") == [
            "Halo Budi Santoso, ada 2 item belum selesai:",
            "1. [Pertemuan 1] PRE_TEST - Pretest 1",
            "2. [Pertemuan 2] PRE_TEST - Pretest 2",
        ]

    def test_link_on_continuation_line(self):
        """Test that a URL is appended on its own line."""
        line = format_item_line(3, make_item(3, url="https://x/3"))

        assert line == "3. [Pertemuan 3] PRE_TEST - Pretest 3\n- Link: https://x/3"

    def test_empty_section_name(self):
        """Test that an empty section name renders as Pertemuan."""
        item = make_item(1)
        item.section_name = ""

        assert format_item_line(1, item).startswith("1. [Pertemuan] ")

    def test_exactly_twenty_items(self, sample_user):
        """Test that no trailer is added at the limit."""
        message = format_message(sample_user, [make_item(i) for i in range(1, 21)])

        assert "lagi..." not in message
        assert message.split("\n")[-1].startswith("20. ")

    def test_more_than_twenty_items(self, sample_user):
        """Test the 20-entry cap and the trailer line."""
        items = [make_item(i) for i in range(1, 26)]

        lines = format_message(sample_user, items).split("\n")

        assert lines[0] == "Halo Budi Santoso, ada 25 item belum selesai:"
        numbered = [line for line in lines if line[0].isdigit()]
        assert len(numbered) == MAX_LISTED_ITEMS
        assert numbered[-1].startswith("20. ")
        assert lines[-1] == "Dan 5 lagi..."

    def test_deterministic(self, sample_user):
        items = [make_item(1, url="https://x/1")]

        assert format_message(sample_user, items) == format_message(sample_user, items)

    def test_pretest_scenario(self, sample_user):
        """Test a synthesized exam link flowing into the message."""
        snapshot = [{
            "kode_course": "C9",
            "coursename": "Jaringan Komputer",
            "section": [{
                "nama_section": "Pertemuan 4",
                "sub_section": [{"id": "X42", "kode_template": "PRE_TEST", "judul": "Pretest 4"}],
            }],
        }]
        items = extract_pending_items(snapshot)
        expected_url = f"{DEFAULT_BASE_URL}/u-courses/C9/exam/X42"

        message = format_message(sample_user, items)

        assert items[0].url == expected_url
        assert f"1. [Pertemuan 4] PRE_TEST - Pretest 4\n- Link: {expected_url}" in message


# =============================================================================
# Payload Tests
# =============================================================================


class TestFormatTimestamp:
    """Tests for ISO-8601 timestamps."""

    def test_utc_with_milliseconds(self):
        moment = datetime(2025, 3, 4, 5, 6, 7, 890123, tzinfo=timezone.utc)

        assert format_timestamp(moment) == "2025-03-04T05:06:07.890Z"

    def test_naive_is_utc(self):
        assert format_timestamp(datetime(2025, 1, 1)) == "2025-01-01T00:00:00.000Z"

    def test_default_now(self):
        stamp = format_timestamp()

        assert stamp.endswith("Z")
        assert len(stamp) == len("2025-01-01T00:00:00.000Z")


class TestBuildPayload:
    """Tests for the webhook payload."""

    def test_payload_fields(self, sample_user):
        items = [make_item(1, url="https://x/1")]
        moment = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

        payload = build_payload("0812", sample_user, "bootstrap", items, "msg", moment)

        assert payload == {
            "type": "incomplete_summary",
            "phone": "0812",
            "user": {"name": "Budi Santoso", "nim": "221011400123"},
            "source": "bootstrap",
            "count": 1,
            "items": [items[0].to_dict()],
            "message": "msg",
            "timestamp": "2025-01-02T03:04:05.000Z",
        }

    def test_missing_user(self):
        payload = build_payload("0812", None, "course_update", [], "msg")

        assert payload["user"] == {"name": None, "nim": None}
        assert payload["count"] == 0
        assert payload["items"] == []


# =============================================================================
# Webhook Delivery Tests
# =============================================================================


class TestCreateWebhookSession:
    """Tests for session creation."""

    def test_session_headers(self):
        session = create_webhook_session()

        assert session.headers["Content-Type"] == "application/json"
        assert "User-Agent" in session.headers


class TestSendToWebhook:
    """Tests for webhook delivery."""

    def test_success(self, ok_session):
        """Test that a 2xx response counts as delivered."""
        assert send_to_webhook(WEBHOOK_URL, {"a": 1}, session=ok_session) is True

        args, kwargs = ok_session.post.call_args
        assert args[0] == WEBHOOK_URL
        assert kwargs["data"] == b'{"a": 1}'
        assert kwargs["headers"]["Content-Type"] == "application/json"

    def test_non_ascii_body(self, ok_session):
        """Test that text is sent as UTF-8, not escaped."""
        send_to_webhook(WEBHOOK_URL, {"m": "Pertemuan ké-1"}, session=ok_session)

        assert ok_session.post.call_args[1]["data"] == '{"m": "Pertemuan ké-1"}'.encode("utf-8")

    @pytest.mark.parametrize("status", [201, 204])
    def test_other_success_statuses(self, ok_session, status):
        ok_session.post.return_value = Mock(status_code=status)

        assert send_to_webhook(WEBHOOK_URL, {}, session=ok_session) is True

    @pytest.mark.parametrize("status", [301, 400, 404, 500, 503])
    def test_error_status(self, ok_session, status):
        """Test that non-2xx responses count as failures."""
        ok_session.post.return_value = Mock(status_code=status)

        assert send_to_webhook(WEBHOOK_URL, {}, session=ok_session) is False

    @pytest.mark.parametrize("error", [
        requests.exceptions.Timeout("slow"),
        requests.exceptions.ConnectionError("refused"),
        requests.exceptions.InvalidURL("bad"),
    ])
    def test_transport_errors(self, ok_session, error):
        """Test that transport exceptions are converted to False."""
        ok_session.post.side_effect = error

        assert send_to_webhook(WEBHOOK_URL, {}, session=ok_session) is False

    def test_serialization_error(self, ok_session):
        """Test that an unserializable payload is not sent."""
        assert send_to_webhook(WEBHOOK_URL, {"bad": object()}, session=ok_session) is False
        ok_session.post.assert_not_called()

    def test_lone_surrogate_is_not_sent(self, ok_session):
        """Test that text which cannot be UTF-8 encoded is not sent."""
        assert send_to_webhook(WEBHOOK_URL, {"message": "\ud83d"}, session=ok_session) is False
        ok_session.post.assert_not_called()

    @pytest.mark.parametrize("url", ["", None])
    def test_missing_url(self, ok_session, url):
        assert send_to_webhook(url, {}, session=ok_session) is False
        ok_session.post.assert_not_called()

    def test_creates_and_closes_own_session(self):
        """Test that a session created internally is closed afterwards."""
        with patch("mentari_notifier.notify.requests.Session") as session_cls:
            session = session_cls.return_value
            session.post.return_value = Mock(status_code=200)

            assert send_to_webhook(WEBHOOK_URL, {}) is True
            session.close.assert_called_once()

    def test_does_not_close_callers_session(self, ok_session):
        send_to_webhook(WEBHOOK_URL, {}, session=ok_session)

        ok_session.close.assert_not_called()
