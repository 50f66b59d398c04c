import pytest

from app.infrastructure.observability.logging import _mask_contact_fields, mask_phone


@pytest.mark.parametrize(
    "phone,expected",
    [
        ("+233201234567", "***4567"),
        ("020 123 4567", "***4567"),
        ("123", "***"),
        (None, None),
        ("", ""),
    ],
)
def test_mask_phone(phone, expected):
    assert mask_phone(phone) == expected


def test_contact_fields_are_masked_in_log_events():
    event = {
        "event": "Notification queued",
        "phone": "+233201234567",
        "destination": "+233501000001",
        "request_id": "req-1",
    }

    masked = _mask_contact_fields(None, "info", event)

    assert masked["phone"] == "***4567"
    assert masked["destination"] == "***0001"
    assert masked["request_id"] == "req-1"
