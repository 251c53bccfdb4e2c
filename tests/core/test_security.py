"""Tests for tokens, OTP hashing and the error envelope."""

import pytest
from jose import JWTError

from annotation_hub.core.correlation import get_correlation_id, set_correlation_id
from annotation_hub.core.exceptions import (
    DeletionRequiresOTPError,
    ExchangeRateUnavailableError,
    NotificationDeliveryError,
    ProjectNotFoundError,
)
from annotation_hub.core.security import create_jwt_token, hash_otp, otp_matches, verify_jwt_token


def test_jwt_roundtrip():
    token = create_jwt_token({"id": "u1", "is_admin": True})
    assert verify_jwt_token(token)["id"] == "u1"


def test_tampered_jwt():
    token = create_jwt_token({"id": "u1"})
    with pytest.raises(JWTError):
        verify_jwt_token(token[:-2] + "xx")


def test_otp_hash_hides_code():
    digest = hash_otp("123456")
    assert "123456" not in digest
    assert digest == hash_otp("123456")
    assert otp_matches("123456", digest)
    assert not otp_matches("123457", digest)
    assert not otp_matches("123456", None)


class TestErrorEnvelope:
    def test_status_codes(self):
        assert ProjectNotFoundError().status_code == 404
        assert ExchangeRateUnavailableError().status_code == 503
        assert NotificationDeliveryError("down").status_code == 502

    def test_envelope_carries_correlation_id_and_data(self):
        set_correlation_id("corr-1")
        content = DeletionRequiresOTPError("p1", "Audio", 2).to_response().to_content()

        assert content["success"] is False
        assert content["correlation_id"] == get_correlation_id() == "corr-1"
        assert content["data"]["requiresOTP"] is True
        assert content["error"] == "DeletionRequiresOTPError"
        assert "errors" not in content
