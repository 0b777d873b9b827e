"""
Webhook Payload Normalization Tests
===================================

Tests for ``normalize_event`` and ``classify_event``.
"""

import pytest

from app.core.errors import PayloadErrorReason, PayloadValidationError
from app.models.subscription import Platform, SubscriptionStatus
from app.services.revenuecat import (
    TRANSFER_PRODUCT_ID,
    classify_event,
    determine_platform,
    normalize_event,
    normalize_referral_code,
)
from tests.conftest import make_event


class TestNormalizeStandardEvents:
    """Non-TRANSFER payloads."""

    def test_maps_event_fields(self):
        payload = make_event(
            "INITIAL_PURCHASE",
            app_user_id="uid123",
            product_id="ProductX",
            expiration_at_ms=1734567890000,
            subscriber_attributes={
                "referral_code": {"value": "CODE", "updated_at_ms": 123},
            },
        )

        event = normalize_event(payload)

        assert event.type == "INITIAL_PURCHASE"
        assert event.user_id == "uid123"
        assert event.product_id == "ProductX"
        assert event.expires_at_ms == 1734567890000
        assert event.referral_code == "CODE"
        assert event.attributes["referral_code"].updated_at_ms == 123

    def test_missing_expiration_is_none(self):
        payload = make_event()
        del payload["event"]["expiration_at_ms"]

        assert normalize_event(payload).expires_at_ms is None

    def test_null_expiration_is_none(self):
        assert normalize_event(make_event(expiration_at_ms=None)).expires_at_ms is None

    def test_zero_expiration_is_kept(self):
        assert normalize_event(make_event(expiration_at_ms=0)).expires_at_ms == 0

    def test_float_expiration_is_truncated_to_int(self):
        assert normalize_event(make_event(expiration_at_ms=1500.0)).expires_at_ms == 1500

    def test_missing_attributes_default_to_empty(self):
        event = normalize_event(make_event())

        assert event.attributes == {}
        assert event.referral_code is None

    def test_malformed_attributes_are_dropped(self):
        payload = make_event(
            subscriber_attributes={
                "referral_code": {"value": "OK"},
                "no_value": {"updated_at_ms": 1},
                "not_a_map": "x",
                "bad_timestamp": {"value": "v", "updated_at_ms": "soon"},
            }
        )

        attributes = normalize_event(payload).attributes

        assert set(attributes) == {"referral_code", "bad_timestamp"}
        assert attributes["bad_timestamp"].updated_at_ms is None

    def test_ignores_untrusted_extra_fields(self):
        payload = make_event(status="ACTIVE", platform="android")
        payload["app_user_id"] = "top-level-should-be-ignored"

        event = normalize_event(payload)

        assert event.user_id == "u1"
        assert not hasattr(event, "status")

    def test_event_is_immutable(self):
        event = normalize_event(make_event())

        with pytest.raises(Exception):
            event.user_id = "someone-else"


class TestNormalizeTransferEvents:
    """TRANSFER payloads carry transferred_to instead of user/product."""

    def test_uses_first_transfer_target(self):
        payload = {
            "event": {
                "type": "TRANSFER",
                "transferred_to": ["uid_new", "uid_other"],
                "transferred_from": ["uid_old"],
                "subscriber_attributes": {"referral_code": {"value": "abc"}},
            }
        }

        event = normalize_event(payload)

        assert event.user_id == "uid_new"
        assert event.product_id == TRANSFER_PRODUCT_ID == "TRANSFER"
        assert event.expires_at_ms is None
        assert event.referral_code == "abc"

    def test_does_not_require_app_user_id_or_product(self):
        event = normalize_event({"event": {"type": "TRANSFER", "transferred_to": ["u2"]}})

        assert event.user_id == "u2"
        assert event.attributes == {}

    @pytest.mark.parametrize("transferred_to", [None, [], "u2", [""], [42]])
    def test_rejects_missing_targets(self, transferred_to):
        event = {"type": "TRANSFER"}
        if transferred_to is not None:
            event["transferred_to"] = transferred_to

        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event({"event": event})

        assert exc_info.value.reason is PayloadErrorReason.MISSING_TRANSFERRED_TO
        assert "transferred_to" in str(exc_info.value)


class TestNormalizeRejections:
    """Every contract violation names its reason and field."""

    @pytest.mark.parametrize("payload", [None, [], "event", 7])
    def test_rejects_non_object(self, payload):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event(payload)

        assert exc_info.value.reason is PayloadErrorReason.NOT_AN_OBJECT

    @pytest.mark.parametrize("payload", [{}, {"event": None}, {"event": "INITIAL_PURCHASE"}])
    def test_rejects_missing_event(self, payload):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event(payload)

        assert exc_info.value.reason is PayloadErrorReason.MISSING_EVENT
        assert exc_info.value.field == "event"
        assert "event" in str(exc_info.value)

    @pytest.mark.parametrize("event", [{}, {"type": ""}, {"type": 5}])
    def test_rejects_missing_type(self, event):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event({"event": event})

        assert exc_info.value.reason is PayloadErrorReason.MISSING_EVENT_TYPE
        assert "event.type" in str(exc_info.value)

    def test_rejects_missing_app_user_id(self):
        payload = make_event()
        del payload["event"]["app_user_id"]

        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event(payload)

        assert exc_info.value.reason is PayloadErrorReason.MISSING_APP_USER_ID
        assert exc_info.value.field == "event.app_user_id"
        assert "app_user_id" in str(exc_info.value)

    def test_rejects_missing_product_id(self):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event(make_event(product_id=""))

        assert exc_info.value.reason is PayloadErrorReason.MISSING_PRODUCT_ID
        assert "product_id" in str(exc_info.value)

    @pytest.mark.parametrize(
        "value",
        [-1, "1734567890000", True, float("nan"), {"ms": 1}, 10**20, 1e300],
    )
    def test_rejects_invalid_expiration(self, value):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event(make_event(expiration_at_ms=value))

        assert exc_info.value.reason is PayloadErrorReason.INVALID_EXPIRATION
        assert "expiration_at_ms" in str(exc_info.value)

    def test_error_maps_to_generic_400(self):
        with pytest.raises(PayloadValidationError) as exc_info:
            normalize_event({})

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid payload format"


class TestClassifyEvent:
    """Event type → subscription status."""

    @pytest.mark.parametrize(
        "event_type,status",
        [
            ("INITIAL_PURCHASE", SubscriptionStatus.ACTIVE),
            ("RENEWAL", SubscriptionStatus.ACTIVE),
            ("BILLING_ISSUE", SubscriptionStatus.PAST_DUE),
            ("CANCELLATION", SubscriptionStatus.CANCELLED),
            ("EXPIRATION", SubscriptionStatus.EXPIRED),
        ],
    )
    def test_known_types(self, event_type, status):
        assert classify_event(event_type) is status

    @pytest.mark.parametrize("event_type", ["TRANSFER", "FOO", "renewal", "UNCANCELLATION", ""])
    def test_unknown_types(self, event_type):
        assert classify_event(event_type) is None


class TestHelpers:

    @pytest.mark.parametrize(
        "product_id,platform",
        [
            ("BallerAIOneMonth", Platform.IOS),
            ("ballerai_android_monthly", Platform.ANDROID),
            ("Monthly_ANDROID", Platform.ANDROID),
            ("TRANSFER", Platform.IOS),
        ],
    )
    def test_determine_platform(self, product_id, platform):
        assert determine_platform(product_id) is platform

    def test_determine_platform_custom_marker(self):
        assert determine_platform("monthly:gp", android_marker=":gp") is Platform.ANDROID

    @pytest.mark.parametrize(
        "value,expected",
        [(" abc12 ", "ABC12"), ("CODE", "CODE"), ("   ", None), ("", None), (None, None)],
    )
    def test_normalize_referral_code(self, value, expected):
        assert normalize_referral_code(value) == expected
