"""Tests for the delivery error taxonomy."""
from __future__ import annotations

import pytest

from src.shared.errors import (
    AuthError,
    BuildFailure,
    CapacityExceededError,
    ConfigurationError,
    DeliveryError,
    DeploySpawnError,
    DeployTimeoutOrCrash,
    LinkPublishFailure,
)


class TestDeliveryError:
    def test_default_message(self):
        err = DeliveryError()
        assert err.message == "Delivery failed"
        assert str(err) == "Delivery failed"

    def test_custom_message_and_output(self):
        err = BuildFailure("build broke", code=2, stdout="out", stderr="err")
        assert err.message == "build broke"
        assert err.code == 2
        assert err.stdout == "out"
        assert err.stderr == "err"

    def test_zero_code_is_forced_to_failure(self):
        assert AuthError("nope", code=0).code == 1

    def test_to_dict(self):
        err = ConfigurationError("missing registry")
        assert err.to_dict() == {
            "error": "ConfigurationError",
            "code": 1,
            "message": "missing registry",
            "stdout": "",
            "stderr": "",
        }


class TestSubclassDefaults:
    @pytest.mark.parametrize(
        "cls, message",
        [
            (LinkPublishFailure, "Image link failed"),
            (DeployTimeoutOrCrash, "Docker deployment failure"),
            (DeploySpawnError, "Fatal error deploying using Docker"),
        ],
    )
    def test_fixed_messages(self, cls, message):
        assert cls().message == message

    def test_all_are_delivery_errors(self):
        for cls in (AuthError, BuildFailure, CapacityExceededError, ConfigurationError):
            assert issubclass(cls, DeliveryError)
