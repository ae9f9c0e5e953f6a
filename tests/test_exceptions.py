"""Tests for Fencehook exception hierarchy."""

import pytest

from fencehook.exceptions import (
    ClaimLostError,
    ConfigurationError,
    DeliveryStateError,
    FencehookError,
    NotFoundError,
    StorageError,
    TransportError,
    ValidationError,
)


class TestFencehookError:
    """Tests for the base FencehookError class."""

    def test_error_message(self):
        """Should store and return message."""
        error = FencehookError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"

    def test_error_code(self):
        """Should have default error code."""
        assert FencehookError("test").code == "fencehook_error"

    def test_to_dict(self):
        """Should convert to API-friendly dict."""
        assert FencehookError("Something went wrong").to_dict() == {
            "error": {
                "code": "fencehook_error",
                "message": "Something went wrong",
            }
        }

    def test_inheritance(self):
        """All custom exceptions should inherit from FencehookError."""
        exceptions = [
            ValidationError("field", "invalid"),
            NotFoundError("webhook", "whk_1"),
            StorageError("failed"),
            ConfigurationError("missing"),
            TransportError("refused"),
            DeliveryStateError("dlv_1", "success"),
            ClaimLostError("dlv_1"),
        ]
        for exc in exceptions:
            assert isinstance(exc, FencehookError)
            assert isinstance(exc, Exception)


class TestValidationError:
    """Tests for ValidationError."""

    def test_to_dict_includes_field(self):
        error = ValidationError("target_url", "must use HTTPS")
        result = error.to_dict()
        assert result["error"]["field"] == "target_url"
        assert result["error"]["code"] == "validation_error"
        assert "must use HTTPS" in error.message


class TestNotFoundError:
    """Tests for NotFoundError."""

    def test_resource_fields(self):
        error = NotFoundError("delivery", "dlv_123")
        assert error.resource_type == "delivery"
        assert error.resource_id == "dlv_123"
        assert error.message == "delivery not found: dlv_123"
        assert error.to_dict()["error"]["resource_id"] == "dlv_123"


class TestTransportError:
    """Tests for TransportError."""

    def test_timed_out_default(self):
        assert TransportError("connection refused").timed_out is False

    def test_timed_out_flag(self):
        error = TransportError("Request timeout after 5.0s", timed_out=True)
        assert error.timed_out is True
        assert error.code == "transport_error"


class TestDeliveryStateError:
    """Tests for DeliveryStateError."""

    def test_message(self):
        error = DeliveryStateError("dlv_abc", "failed")
        assert error.delivery_id == "dlv_abc"
        assert error.status == "failed"
        assert str(error) == "delivery dlv_abc is failed and cannot change"

    def test_catchable_as_base(self):
        with pytest.raises(FencehookError):
            raise DeliveryStateError("dlv_abc", "success")


class TestClaimLostError:
    """Tests for ClaimLostError."""

    def test_message(self):
        error = ClaimLostError("dlv_abc")
        assert error.delivery_id == "dlv_abc"
        assert error.code == "claim_lost"
        assert "dlv_abc" in str(error)
