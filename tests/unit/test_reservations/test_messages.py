"""Tests for localized reservation message wording."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from notify_service.features.reservations.events import ReservationEvent, ReservationEventContext
from notify_service.features.reservations.messages import (
    build_message,
    format_reservation_time,
    normalize_locale,
    status_label,
)


def make_context(**overrides) -> ReservationEventContext:
    values = {
        "reservation_id": "r-1",
        "tenant_id": "store-1",
        "event": ReservationEvent.CREATED,
        "customer_id": "customer-1",
        "customer_name": "Casey",
        "reservation_time": datetime(2026, 6, 1, 18, 30, tzinfo=UTC),
        "facility_name": "Window table",
        "party_size": 4,
        "message": "Birthday dinner",
    }
    values.update(overrides)
    return ReservationEventContext(**values)


class TestLocales:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (None, "en"),
            ("en-US", "en"),
            ("tw", "tw"),
            ("zh-TW", "tw"),
            ("zh_Hant", "tw"),
            ("ja-JP", "jp"),
            ("jp", "jp"),
            ("fr", "en"),
        ],
    )
    def test_normalize_locale(self, raw, expected):
        assert normalize_locale(raw) == expected

    def test_status_label(self):
        assert status_label("en", 10) == "Awaiting confirmation"
        assert status_label("tw", 40) == "已就緒"
        assert status_label("en", 99) == "99"
        assert status_label("en", None) == "-"

    def test_format_reservation_time(self):
        assert format_reservation_time(datetime(2026, 6, 1, 18, 30)) == "2026-06-01 18:30 UTC"
        assert format_reservation_time(None) == "-"


class TestBuildMessage:
    def test_store_facing_message(self):
        message = build_message(make_context(), "created", locale="en", store_name="Sunrise Cafe")

        assert message.subject == "New reservation request from Casey"
        assert message.body.splitlines() == [
            "You have received a new reservation request.",
            "",
            "Customer: Casey",
            "Facility: Window table",
            "Date/time: 2026-06-01 18:30 UTC",
            "Party size: 4",
            "Message: Birthday dinner",
        ]

    def test_customer_facing_message_hides_note(self):
        message = build_message(
            make_context(), "reminder", locale="jp", store_name="Sunrise Cafe", for_customer=True
        )

        assert message.subject == "リマインダー：Sunrise Cafe のご予約"
        assert "店舗: Sunrise Cafe" in message.body
        assert "Birthday dinner" not in message.body

    def test_anonymous_customer(self):
        message = build_message(
            make_context(customer_id=None, customer_name=None), "cancelled_store", locale="tw"
        )
        assert message.subject == "訪客 已取消預約"

    def test_email_stands_in_for_name(self):
        message = build_message(
            make_context(customer_name=None, customer_email="casey@example.com"), "updated", locale="en"
        )
        assert message.subject == "Reservation updated by casey@example.com"

    def test_status_change_lists_both_states(self):
        message = build_message(
            make_context(event=ReservationEvent.STATUS_CHANGED, previous_status=0, new_status=10),
            "status_changed",
            locale="en",
        )
        assert "From: Pending" in message.body
        assert "To: Awaiting confirmation" in message.body
