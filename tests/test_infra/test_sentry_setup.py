from __future__ import annotations

from unittest.mock import patch

import orderflow.main as main_module
from orderflow.observability.sentry_setup import init_backend_sentry, sentry_before_send


def test_sentry_before_send_redacts_actor_identity_and_address() -> None:
    event = {
        "request": {
            "headers": {
                "X-Actor-Id": "cust-1",
                "X-Actor-Role": "customer",
                "Authorization": "Bearer upstream-token",
            },
            "data": {
                "serviceId": "svc-plumbing",
                "addressText": "12 Harbour Street",
            },
        },
        "extra": {
            "api_key": "key-123",
            "order_id": "5b0c",
        },
        "breadcrumbs": {
            "values": [
                {
                    "category": "http",
                    "data": {
                        "authorization": "Bearer in-breadcrumb",
                        "path": "/api/v1/orders",
                    },
                }
            ]
        },
    }

    sanitized = sentry_before_send(event, {})

    headers = sanitized["request"]["headers"]
    assert headers["X-Actor-Id"] == "[REDACTED]"
    assert headers["X-Actor-Role"] == "customer"
    assert headers["Authorization"] == "[REDACTED]"
    assert sanitized["request"]["data"]["addressText"] == "[REDACTED]"
    assert sanitized["request"]["data"]["serviceId"] == "svc-plumbing"
    assert sanitized["extra"]["api_key"] == "[REDACTED]"
    assert sanitized["extra"]["order_id"] == "5b0c"
    breadcrumb_data = sanitized["breadcrumbs"]["values"][0]["data"]
    assert breadcrumb_data["authorization"] == "[REDACTED]"
    assert breadcrumb_data["path"] == "/api/v1/orders"


def test_sentry_before_send_does_not_mutate_original_event() -> None:
    event = {"request": {"headers": {"X-Actor-Id": "spec-a"}}}

    sanitized = sentry_before_send(event, {})

    assert event["request"]["headers"]["X-Actor-Id"] == "spec-a"
    assert sanitized["request"]["headers"]["X-Actor-Id"] == "[REDACTED]"


def test_init_backend_sentry_is_noop_without_dsn() -> None:
    with patch("orderflow.observability.sentry_setup.sentry_sdk.init") as mocked_init:
        assert init_backend_sentry(source="backend") is False

    mocked_init.assert_not_called()


def test_fastapi_create_app_bootstraps_sentry() -> None:
    with patch("orderflow.main.init_backend_sentry") as mocked_init:
        main_module.create_app()

    mocked_init.assert_called_once_with(source="fastapi")
