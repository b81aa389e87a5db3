from __future__ import annotations

import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from solaris.api import (
    routes_captures,
    routes_device,
    routes_health,
    routes_metrics,
    routes_session,
    routes_status,
)
from solaris.device.client import DeviceStatus
from solaris.device.provisioning import ProvisioningResult
from solaris.errors import ConnectivityError, ProvisioningError, RejectedCommandError
from solaris.main import SolarisState, create_app

from fake_device import FakeDeviceClient, make_capture


def _build_state(tmp_path, monkeypatch, fake: FakeDeviceClient) -> SolarisState:
    bootstrap_path = tmp_path / "bootstrap.json"
    data_dir = tmp_path / "data"
    monkeypatch.setitem(sys.modules, "keyring", None)
    monkeypatch.setattr("solaris.config.migrate.bootstrap_config_path", lambda: bootstrap_path)
    monkeypatch.setattr("solaris.main.DeviceClient", lambda endpoint, **kwargs: fake)
    return SolarisState.create(data_dir=str(data_dir), log_level="warning", autostart=False)


def _client(state: SolarisState) -> TestClient:
    app = FastAPI()
    app.state.solaris = state
    for module in (routes_health, routes_status, routes_captures, routes_device, routes_session, routes_metrics):
        app.include_router(module.router, prefix="/api")
    return TestClient(app)


@pytest.fixture
def fake() -> FakeDeviceClient:
    return FakeDeviceClient("http://device-a.test", DeviceStatus(mode="automatic", foyer=False, porch=False, battery=77))


@pytest.fixture
def state(tmp_path, monkeypatch, fake):
    built = _build_state(tmp_path, monkeypatch, fake)
    yield built
    built.shutdown()


def _register(client: TestClient) -> dict[str, object]:
    response = client.post("/api/device", json={"display_name": "Front Door", "endpoint_url": "http://device-a.test/"})
    assert response.status_code == 200
    return response.json()["device"]


def test_status_routes_without_device(state) -> None:
    client = _client(state)

    assert client.get("/api/device").status_code == 404
    assert client.post("/api/status/refresh").status_code == 404
    assert client.post("/api/status/mode", json={"mode": "manual"}).status_code == 404
    assert client.get("/api/status").json()["device"] is None


def test_register_refresh_and_toggle(state, fake) -> None:
    client = _client(state)
    device = _register(client)
    assert device["id"] == "dev-local"
    assert device["endpoint_url"] == "http://device-a.test"

    refreshed = client.post("/api/status/refresh").json()
    assert refreshed["connected"] is True
    assert refreshed["battery_level"] == 77

    toggled = client.post("/api/status/lights/foyer", json={"on": True})
    assert toggled.status_code == 200
    assert toggled.json()["foyer_light"] is True
    assert fake.commands == [{"foyer": True}]


def test_command_errors_map_to_http_status(state, fake) -> None:
    client = _client(state)
    _register(client)
    client.post("/api/status/refresh")

    fake.command_error = RejectedCommandError("relay busy")
    rejected = client.post("/api/status/lights/porch", json={"on": True})
    assert rejected.status_code == 409
    assert rejected.json()["detail"] == "relay busy"

    fake.command_error = ConnectivityError("/api/mode failed: ConnectTimeout")
    assert client.post("/api/status/mode", json={"mode": "manual"}).status_code == 503

    snapshot = client.get("/api/status").json()
    assert snapshot["porch_light"] is False
    assert snapshot["mode"] == "automatic"


def test_invalid_inputs_are_rejected(state) -> None:
    client = _client(state)
    _register(client)

    assert client.post("/api/status/mode", json={"mode": "party"}).status_code == 422
    assert client.post("/api/status/lights/attic", json={"on": True}).status_code == 404
    bad = client.post("/api/device", json={"display_name": "x", "endpoint_url": "ftp://device"})
    assert bad.status_code == 400


def test_rename_keeps_binding(state) -> None:
    client = _client(state)
    _register(client)
    epoch = state.reconciler.state.epoch

    response = client.patch("/api/device", json={"display_name": "Porch Hub"})

    assert response.status_code == 200
    assert response.json()["device"]["display_name"] == "Porch Hub"
    assert state.reconciler.state.epoch == epoch


def test_capture_routes(state) -> None:
    client = _client(state)
    _register(client)
    state.store.insert_captures(
        [
            make_capture("evt-1", "2026-03-01T10:00:00+00:00", device_id="dev-local"),
            make_capture("evt-2", "2026-03-01T10:05:00+00:00", device_id="dev-local"),
        ]
    )

    listing = client.post("/api/captures/refresh").json()
    assert [item["id"] for item in listing["items"]] == ["evt-2", "evt-1"]
    assert listing["items"][0]["video_url"] == "http://device-a.test/videos/evt-2.mp4"
    assert listing["items"][0]["thumbnail_url"] == "http://device-a.test/thumbnails/evt-2.jpg"

    viewed = client.post("/api/captures/evt-1/viewed", json={})
    assert viewed.json()["viewed"] is True
    starred = client.post("/api/captures/evt-2/starred", json={"starred": True})
    assert starred.json()["starred"] is True
    assert client.post("/api/captures/missing/viewed", json={}).status_code == 404

    assert client.delete("/api/captures/evt-1").status_code == 200
    remaining = client.get("/api/captures").json()
    assert [item["id"] for item in remaining["items"]] == ["evt-2"]
    assert remaining["items"][0]["starred"] is True


def test_session_routes_rebind_device(state, fake) -> None:
    client = _client(state)
    _register(client)

    assert client.get("/api/session").json()["signed_in"] is True
    signed_out = client.post("/api/session/sign-out").json()
    assert signed_out["signed_in"] is False
    assert state.reconciler.device is None
    assert state.captures.device_id is None

    assert client.post("/api/session/sign-in", json={"email": "nobody@example.test", "password": "x"}).status_code == 401
    signed_in = client.post("/api/session/sign-in", json={"email": "local@solaris.invalid", "password": "x"})
    assert signed_in.json()["user"]["id"] == "local-user"
    assert state.reconciler.device is not None
    assert state.reconciler.device.id == "dev-local"

    assert client.post("/api/session/sign-up", json={"email": "new@example.test", "password": "x"}).status_code == 401


def test_pair_route(state, monkeypatch) -> None:
    client = _client(state)
    monkeypatch.setattr("solaris.main.provision_device", lambda request, setup_url: ProvisioningResult("dev-new", "pi-1"))

    response = client.post(
        "/api/device/pair",
        json={"device_name": "Garage", "ssid": "home", "password": "wifi", "endpoint_url": "https://garage.example.test"},
    )

    assert response.status_code == 200
    assert response.json()["device"]["id"] == "dev-new"
    assert state.reconciler.device.display_name == "Garage"

    def _fail(request, setup_url):
        raise ProvisioningError("Missing fields: ssid")

    monkeypatch.setattr("solaris.main.provision_device", _fail)
    failed = client.post(
        "/api/device/pair",
        json={"device_name": "Garage", "ssid": "", "password": "wifi", "endpoint_url": "https://garage.example.test"},
    )
    assert failed.status_code == 400


def test_metrics_route(state) -> None:
    client = _client(state)
    state.store.record_trigger("camera", "2026-03-01T09:00:00+00:00")
    state.store.record_battery(66, "2026-03-01T09:00:00+00:00")

    payload = client.get("/api/metrics", params={"day": "2026-03-01"}).json()

    assert payload["counts"]["camera"] == 1
    assert payload["latest_battery"] == 66.0
    assert client.get("/api/metrics", params={"day": "yesterday"}).status_code == 400


def test_lifecycle_pauses_and_resumes_polling(state, fake) -> None:
    client = _client(state)
    _register(client)

    assert client.post("/api/lifecycle", json={"state": "background"}).json()["lifecycle"] == "background"
    assert state.reconciler.poller.paused is True
    assert state.captures.poller.paused is True
    health_calls = fake.health_calls

    assert client.post("/api/lifecycle", json={"state": "active"}).json()["lifecycle"] == "active"
    assert state.reconciler.poller.paused is False
    assert fake.health_calls == health_calls + 1


def test_health_route(state) -> None:
    payload = _client(state).get("/api/health").json()
    assert payload["ok"] is True
    assert payload["backend"] == "local"
    assert payload["signed_in"] is True
    assert payload["device_bound"] is False


def test_create_app_serves_and_shuts_down(tmp_path, monkeypatch) -> None:
    monkeypatch.setitem(sys.modules, "keyring", None)
    monkeypatch.setattr("solaris.config.migrate.bootstrap_config_path", lambda: tmp_path / "bootstrap.json")

    app = create_app(data_dir=str(tmp_path / "data"), log_level="warning")
    with TestClient(app) as client:
        assert client.get("/api/health").json()["ok"] is True
    assert app.state.solaris._shutdown_complete is True


def test_health_route_masks_supabase_keys(state) -> None:
    state.settings_store.update(supabase={"url": "https://project.supabase.test", "anon_key": "anon-secret", "session_ref": None})

    payload = _client(state).get("/api/health").json()

    assert payload["settings"]["supabase"]["anon_key"] == "***"
    assert "anon-secret" not in str(payload)
