# tests/services/test_relay_app.py
"""
Тесты HTTP и WebSocket поверхности Location Relay.
"""

from __future__ import annotations

from typing import Any, Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from src.services.location_relay.app import app


@pytest.fixture
def client(fake_upstream) -> Iterator[TestClient]:
    """Клиент с поднятым lifespan и фейковым внешним сервисом."""
    with patch(
        "src.services.location_relay.dependencies._build_http_client",
        side_effect=lambda: fake_upstream.client(),
    ):
        with TestClient(app) as test_client:
            yield test_client


def _connect(client: TestClient):
    return client.websocket_connect("/ws")


def _send(ws, event: str, data: dict[str, Any] | None = None) -> None:
    frame: dict[str, Any] = {"event": event}
    if data is not None:
        frame["data"] = data
    ws.send_json(frame)


def _expect(ws, event: str) -> Any:
    message = ws.receive_json()
    assert message["event"] == event, message
    return message["data"]


class TestHttp:
    """REST endpoints."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "location_relay"
        assert body["version"] == "1.0.0"

    def test_update_accepted(self, client: TestClient, fake_upstream) -> None:
        fake_upstream.statuses[99] = {"status": "in transit"}

        response = client.post(
            "/api/location/update",
            json={"courier_id": 7, "latitude": 10.5, "longitude": 20.25, "package_id": 99},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Location update received and broadcasted"
        assert body["courier_id"] == 7
        assert body["package_id"] == 99
        assert body["position"]["latitude"] == 10.5
        assert fake_upstream.status_requests == [99]

    def test_update_with_status_hint(self, client: TestClient, fake_upstream) -> None:
        response = client.post(
            "/api/location/update?package_status=delivered",
            json={"courier_id": 7, "latitude": 1.0, "longitude": 2.0, "package_id": 99},
        )

        assert response.status_code == 200
        assert fake_upstream.status_requests == []
        assert client.get("/stats").json()["merchant_suppressed"] == 1

    def test_empty_status_hint_falls_back_to_lookup(self, client: TestClient, fake_upstream) -> None:
        """Пустой package_status считается отсутствующим."""
        fake_upstream.statuses[99] = {"status": "delivered"}

        response = client.post(
            "/api/location/update?package_status=",
            json={"courier_id": 7, "latitude": 1.0, "longitude": 2.0, "package_id": 99},
        )

        assert response.status_code == 200
        assert fake_upstream.status_requests == [99]
        assert client.get("/stats").json()["merchant_suppressed"] == 1

    def test_update_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/location/update",
            json={"courier_id": 7, "latitude": 200, "longitude": 20.25},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "invalid_payload"
        assert body["details"][0]["loc"] == ["latitude"]
        assert client.get("/api/location/7").status_code == 404

    def test_locations_listing(self, client: TestClient) -> None:
        assert client.get("/api/location/all").json() == []

        client.post("/api/location/update", json={"courier_id": 1, "latitude": 1.0, "longitude": 1.0})
        client.post("/api/location/update", json={"courier_id": 2, "latitude": 2.0, "longitude": 2.0})

        listing = client.get("/api/location/all").json()
        assert sorted(p["courier_id"] for p in listing) == [1, 2]

        single = client.get("/api/location/2")
        assert single.status_code == 200
        assert single.json()["latitude"] == 2.0

    def test_unknown_courier(self, client: TestClient) -> None:
        response = client.get("/api/location/404")

        assert response.status_code == 404
        assert response.json()["detail"] == "Courier not found"

    def test_stats(self, client: TestClient) -> None:
        client.post("/api/location/update", json={"courier_id": 1, "latitude": 1.0, "longitude": 1.0})

        stats = client.get("/stats").json()

        assert stats["updates_accepted"] == 1
        assert stats["cached_couriers"] == 1
        assert stats["active_connections"] == 0

    def test_persisted_after_shutdown(self, fake_upstream) -> None:
        with patch(
            "src.services.location_relay.dependencies._build_http_client",
            side_effect=lambda: fake_upstream.client(),
        ):
            with TestClient(app) as test_client:
                test_client.post(
                    "/api/location/update",
                    json={"courier_id": 7, "latitude": 1.0, "longitude": 2.0, "speed": 4.5},
                )

        assert len(fake_upstream.store_calls) == 1
        stored = fake_upstream.store_calls[0]
        assert stored["courier_id"] == 7
        assert stored["speed"] == 4.5
        assert stored["package_id"] is None


class TestWebSocket:
    """Протокол /ws."""

    def test_connected_greeting(self, client: TestClient) -> None:
        with _connect(client) as ws:
            data = _expect(ws, "connected")

        assert data["message"] == "Connected to location tracking server"
        assert data["connection_id"]

    def test_ping_pong(self, client: TestClient) -> None:
        with _connect(client) as ws:
            _expect(ws, "connected")
            _send(ws, "ping")
            assert _expect(ws, "pong") == {}

    def test_office_and_merchant_receive_in_transit_update(self, client: TestClient, fake_upstream) -> None:
        fake_upstream.statuses[99] = {"data": {"status": "in transit"}}

        with _connect(client) as office, _connect(client) as merchant, _connect(client) as rider:
            for ws in (office, merchant, rider):
                _expect(ws, "connected")

            _send(office, "join:office")
            assert _expect(office, "location:all") == []
            _send(merchant, "join:merchant", {"merchant_id": 1, "package_id": 99})
            _send(merchant, "ping")
            _expect(merchant, "pong")
            _send(rider, "join:rider", {"courier_id": 7})
            assert _expect(rider, "joined") == {"courier_id": 7}

            _send(rider, "location:update", {
                "courier_id": 7, "latitude": 10.5, "longitude": 20.25, "package_id": 99,
            })
            ack = _expect(rider, "location:received")

            assert _expect(office, "location:update") == ack
            assert _expect(merchant, "location:update") == ack
            assert ack["courier_id"] == 7
            assert ack["package_id"] == 99

    def test_merchant_not_told_when_delivered(self, client: TestClient, fake_upstream) -> None:
        fake_upstream.statuses[99] = {"status": "delivered"}

        with _connect(client) as merchant, _connect(client) as rider:
            _expect(merchant, "connected")
            _expect(rider, "connected")
            _send(merchant, "join:merchant", {"merchant_id": 1, "package_id": 99})
            _send(merchant, "ping")
            _expect(merchant, "pong")

            _send(rider, "location:update", {
                "courier_id": 7, "latitude": 1.0, "longitude": 2.0, "package_id": 99,
            })
            _expect(rider, "location:received")

            # Следующим кадром мерчант должен получить pong, а не позицию
            _send(merchant, "ping")
            _expect(merchant, "pong")

    def test_merchant_leave(self, client: TestClient, fake_upstream) -> None:
        fake_upstream.statuses[99] = {"status": "in transit"}

        with _connect(client) as merchant, _connect(client) as rider:
            _expect(merchant, "connected")
            _expect(rider, "connected")
            _send(merchant, "join:merchant", {"merchant_id": 1, "package_id": 99})
            _send(merchant, "leave:merchant", {"package_id": 99})
            assert _expect(merchant, "left") == {"package_id": 99}

            _send(rider, "location:update", {
                "courier_id": 7, "latitude": 1.0, "longitude": 2.0, "package_id": 99,
            })
            _expect(rider, "location:received")

            _send(merchant, "ping")
            _expect(merchant, "pong")

    def test_merchant_join_snapshot(self, client: TestClient, fake_upstream) -> None:
        fake_upstream.statuses[99] = {"status": "in transit"}
        client.post(
            "/api/location/update",
            json={"courier_id": 7, "latitude": 1.0, "longitude": 2.0, "package_id": 99},
        )

        with _connect(client) as merchant:
            _expect(merchant, "connected")
            _send(merchant, "join:merchant", {"merchant_id": "m-1", "package_id": 99})
            snapshot = _expect(merchant, "location:update")

        assert snapshot["courier_id"] == 7

    def test_office_snapshot(self, client: TestClient) -> None:
        client.post("/api/location/update", json={"courier_id": 1, "latitude": 1.0, "longitude": 1.0})
        client.post("/api/location/update", json={"courier_id": 2, "latitude": 2.0, "longitude": 2.0})

        with _connect(client) as office:
            _expect(office, "connected")
            _send(office, "join:office")
            snapshot = _expect(office, "location:all")

        assert sorted(p["courier_id"] for p in snapshot) == [1, 2]

    def test_position_survives_disconnect(self, client: TestClient) -> None:
        with _connect(client) as rider:
            _expect(rider, "connected")
            _send(rider, "join:rider", {"courier_id": 7})
            _expect(rider, "joined")
            _send(rider, "location:update", {"courier_id": 7, "latitude": 1.0, "longitude": 2.0})
            _expect(rider, "location:received")

        response = client.get("/api/location/7")
        assert response.status_code == 200
        assert response.json()["longitude"] == 2.0

    @pytest.mark.parametrize(
        ("event", "data", "message"),
        [
            ("join:merchant", {"merchant_id": 1}, "merchant_id and package_id required"),
            ("join:merchant", {"package_id": "abc", "merchant_id": 1}, "merchant_id and package_id required"),
            ("join:merchant", {"merchant_id": "", "package_id": 0}, "merchant_id and package_id required"),
            ("join:merchant", {"merchant_id": 1, "package_id": 0}, "merchant_id and package_id required"),
            ("join:merchant", {"merchant_id": 0, "package_id": 99}, "merchant_id and package_id required"),
            ("join:merchant", {"merchant_id": "  ", "package_id": 99}, "merchant_id and package_id required"),
            ("join:merchant", {"merchant_id": 1, "package_id": True}, "merchant_id and package_id required"),
            ("join:rider", {}, "courier_id required"),
            ("leave:merchant", {}, "package_id required"),
            ("leave:merchant", {"package_id": True}, "package_id required"),
            ("join:rider", {"courier_id": True}, "courier_id required"),
            ("join:rider", {"courier_id": 0}, "courier_id required"),
            ("teleport", {}, "Unknown event: teleport"),
        ],
    )
    def test_bad_events(self, client: TestClient, event: str, data: dict, message: str) -> None:
        with _connect(client) as ws:
            _expect(ws, "connected")
            _send(ws, event, data)
            error = _expect(ws, "error")

        assert error["message"] == message

    def test_invalid_json(self, client: TestClient) -> None:
        with _connect(client) as ws:
            _expect(ws, "connected")
            ws.send_text("{not json")
            assert _expect(ws, "error")["message"] == "Invalid JSON"

            ws.send_text("[1, 2]")
            _expect(ws, "error")

            # Соединение остаётся рабочим
            _send(ws, "ping")
            _expect(ws, "pong")

    def test_invalid_location_update(self, client: TestClient) -> None:
        with _connect(client) as ws:
            _expect(ws, "connected")
            _send(ws, "location:update", {"courier_id": 7, "latitude": 200, "longitude": 20.25})
            error = _expect(ws, "error")

        assert error["message"] == "Invalid location payload"
        assert error["details"][0]["loc"] == ["latitude"]
        assert client.get("/api/location/7").status_code == 404
