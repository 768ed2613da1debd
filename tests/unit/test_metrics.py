from __future__ import annotations


def test_metrics_module_imports() -> None:
    """All metric objects should be importable."""
    from genie_chat.metrics import (
        genie_errors_total,
        genie_outcomes_total,
        genie_poll_attempts,
        genie_submission_duration,
        relay_requests_total,
        relay_upstream_duration,
        websocket_connections,
    )
    assert relay_requests_total is not None
    assert relay_upstream_duration is not None
    assert genie_poll_attempts is not None
    assert genie_submission_duration is not None
    assert genie_outcomes_total is not None
    assert genie_errors_total is not None
    assert websocket_connections is not None


def test_clients_module_imports() -> None:
    """Client singleton functions should be importable."""
    from genie_chat.clients import close_clients, get_genie_http_client, get_redis_client, get_relay_http_client
    assert callable(get_genie_http_client)
    assert callable(get_relay_http_client)
    assert callable(get_redis_client)
    assert callable(close_clients)


def test_metrics_endpoint_exposes_relay_counters() -> None:
    from starlette.testclient import TestClient

    from genie_chat.main import app

    with TestClient(app) as client:
        client.get("/api/genie")
        response = client.get("/metrics")

    assert response.status_code == 200
    assert "genie_relay_requests_total" in response.text
