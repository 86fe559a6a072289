"""Smoke tests — validate the function app wiring."""

import json
from unittest.mock import MagicMock, patch

import azure.functions as func


def test_health_check_returns_status() -> None:
    """Health endpoint returns ok status with version from the package."""
    from onedrive_index.functions.http_trigger import health_check

    response = health_check(MagicMock(spec=func.HttpRequest))

    assert response.status_code == 200
    body = json.loads(response.get_body())
    assert body["status"] == "ok"
    assert body["version"] == "0.1.0"


def test_get_service_is_built_once() -> None:
    """The service, and with it the in-process cache, is shared across requests."""
    from onedrive_index.functions import http_trigger

    http_trigger.get_service.cache_clear()
    with (
        patch.object(http_trigger, "load_config") as mock_load,
        patch.object(http_trigger, "index_service_from_config") as mock_factory,
    ):
        first = http_trigger.get_service()
        second = http_trigger.get_service()

    assert first is second
    mock_load.assert_called_once()
    mock_factory.assert_called_once()
    http_trigger.get_service.cache_clear()
