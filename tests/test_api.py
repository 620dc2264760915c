import dataclasses

import pytest
from fastapi.testclient import TestClient

from thundermodman import main
from thundermodman.errors import CyclicDependencyError, InstallFailure
from thundermodman.models import InstallResult
from thundermodman.services.auto_stop import AutoStopController
from thundermodman.services.installer import InstallationOrchestrator
from thundermodman.services.resolver import DependencyResolver

from conftest import FakeIndex, make_package
from test_auto_stop import FakeRuntime


class FlakyStore:
    def install(self, package):
        if package.full_name == "Author-D":
            raise InstallFailure(package.full_name, "Download of Author-D failed")
        return InstallResult(full_name=package.full_name, success=True, message="ok")

    def uninstall(self, full_name):
        return InstallResult(full_name=full_name, success=True, message=f"Uninstalled {full_name}")


@pytest.fixture()
def client(monkeypatch, diamond_index):
    installer = InstallationOrchestrator(diamond_index, DependencyResolver(diamond_index), FlakyStore())
    runtime = FakeRuntime()
    monkeypatch.setattr(main, "installer", installer)
    monkeypatch.setattr(main, "runtime", runtime)
    monkeypatch.setattr(
        main, "auto_stop", AutoStopController(runtime, container_name="valheim", enabled=False)
    )
    monkeypatch.setattr(main, "settings", dataclasses.replace(main.settings, restart_container="valheim"))
    return TestClient(main.app)


def test_install_with_dependencies_reports_every_package(client):
    response = client.post(
        "/api/install",
        json={"community": "valheim", "fullName": "Author-A", "includeDeps": True},
    )

    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["fullName"] for r in results][0] == "Author-D"
    assert results[0] == {
        "fullName": "Author-D",
        "success": False,
        "message": "Download of Author-D failed",
    }
    assert all(r["success"] for r in results[1:])


def test_install_unknown_package_returns_404(client):
    response = client.post("/api/install", json={"community": "valheim", "fullName": "No-One"})

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_resolution_error_has_stable_discriminator(client, monkeypatch):
    cyclic = FakeIndex(
        [
            make_package("Author-A", deps=["Author-B-1.0.0"]),
            make_package("Author-B", deps=["Author-A-1.0.0"]),
        ]
    )
    monkeypatch.setattr(
        main, "installer", InstallationOrchestrator(cyclic, DependencyResolver(cyclic), FlakyStore())
    )

    response = client.post(
        "/api/install",
        json={"community": "valheim", "fullName": "Author-A", "includeDeps": True},
    )

    assert response.status_code == 409
    assert response.json()["error"] == CyclicDependencyError.code


def test_install_requires_full_name(client):
    response = client.post("/api/install", json={"community": "valheim"})

    assert response.status_code == 422


def test_auto_stop_settings_round_trip(client):
    assert client.get("/api/settings/auto-stop").json() == {
        "enabled": False,
        "timeoutMinutes": 15.0,
        "idleMinutes": 0.0,
    }

    response = client.post("/api/settings/auto-stop", json={"enabled": True, "timeoutMinutes": 30})

    assert response.status_code == 200
    assert response.json()["config"]["enabled"] is True
    assert response.json()["config"]["timeoutMinutes"] == 30


def test_auto_stop_rejects_non_positive_timeout(client):
    response = client.post("/api/settings/auto-stop", json={"timeoutMinutes": 0})

    assert response.status_code == 422


def test_server_status_and_stop(client):
    assert client.get("/api/server-status").json()["running"] is True

    response = client.post("/api/stop-server")

    assert response.json() == {"success": True, "message": "Stopped valheim"}
    assert main.runtime.stop_calls == 1


def test_server_routes_require_configured_container(client, monkeypatch):
    monkeypatch.setattr(main, "settings", dataclasses.replace(main.settings, restart_container=None))

    response = client.post("/api/start-server")

    assert response.status_code == 400
    assert response.json()["detail"] == "RESTART_CONTAINER not configured"
