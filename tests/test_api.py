"""
Unit tests for the plugin API.

Tests the Docker volume plugin endpoints against a registry whose mount
manager is mocked, so no EC2 or mount calls are made.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from ebs_blocker import __version__
from ebs_blocker.api.rest import VolumeRequest, create_app
from ebs_blocker.config import BlockerConfig
from ebs_blocker.errors import InstanceIdentityError, MountOperationError
from ebs_blocker.manager import VolumeRegistry

pytestmark = pytest.mark.api

DOCKER_CONTENT_TYPE = "application/vnd.docker.plugins.v1.2+json"


@pytest.fixture
def config(tmp_path) -> BlockerConfig:
    return BlockerConfig(socket_path=str(tmp_path / "blocker.sock"))


@pytest.fixture
def registry(mock_mounter, mock_lookup) -> VolumeRegistry:
    return VolumeRegistry(mock_mounter, mock_lookup)


@pytest.fixture
def client(config, registry) -> TestClient:
    return TestClient(create_app(config, registry=registry))


class TestAPIInit:
    """Tests for API initialization."""

    def test_create_app(self, config, registry):
        app = create_app(config, registry=registry)

        assert app.title == "ebs-blocker"
        assert app.version == __version__
        assert app.state.registry is registry

    def test_app_has_routes(self, config, registry):
        app = create_app(config, registry=registry)

        routes = [r.path for r in app.routes]
        for path in [
            "/Plugin.Activate",
            "/VolumeDriver.Create",
            "/VolumeDriver.Mount",
            "/VolumeDriver.Path",
            "/VolumeDriver.Unmount",
            "/VolumeDriver.Remove",
            "/VolumeDriver.Get",
            "/VolumeDriver.List",
            "/VolumeDriver.Capabilities",
        ]:
            assert path in routes

    def test_docs_disabled(self, client):
        assert client.get("/docs").status_code == 404


class TestActivate:
    def test_activate(self, client):
        response = client.post("/Plugin.Activate")

        assert response.status_code == 200
        assert response.json() == {"Implements": ["VolumeDriver"]}


class TestVolumeLifecycle:
    """Tests for Create/Mount/Path/Unmount/Remove."""

    def test_full_flow(self, client, mock_mounter):
        response = client.post("/VolumeDriver.Create", json={"Name": "vol1", "Opts": {}})
        assert response.status_code == 200
        assert response.json() == {"Err": ""}

        response = client.post("/VolumeDriver.Mount", json={"Name": "vol1", "ID": "abc"})
        data = response.json()
        assert data["Err"] == ""
        assert data["Mountpoint"].startswith("/mnt/blocker/")
        mountpoint = data["Mountpoint"]

        response = client.post("/VolumeDriver.Path", json={"Name": "vol1"})
        assert response.json() == {"Mountpoint": mountpoint, "Err": ""}

        response = client.post("/VolumeDriver.Unmount", json={"Name": "vol1", "ID": "abc"})
        assert response.json() == {"Err": ""}
        mock_mounter.unmount.assert_awaited_once_with(mountpoint, "vol1")

        response = client.post("/VolumeDriver.Path", json={"Name": "vol1"})
        assert response.json()["Mountpoint"] == ""
        assert "not mounted" in response.json()["Err"]

        response = client.post("/VolumeDriver.Remove", json={"Name": "vol1"})
        assert response.json() == {"Err": ""}

    def test_create_with_options(self, client, registry):
        response = client.post(
            "/VolumeDriver.Create",
            json={"Name": "data", "Opts": {"volume_id": "vol-0123", "size": "10"}},
        )

        assert response.json() == {"Err": ""}
        assert registry.get("data").volume_id == "vol-0123"

    def test_create_without_opts(self, client, registry):
        response = client.post("/VolumeDriver.Create", json={"Name": "data"})

        assert response.json() == {"Err": ""}
        assert registry.get("data").volume_id == "data"

    def test_create_with_service(self, client, registry, mock_lookup):
        response = client.post(
            "/VolumeDriver.Create",
            json={"Name": "data", "Opts": {"service": "web"}},
        )

        assert response.json() == {"Err": ""}
        mock_lookup.find_by_service_tag.assert_awaited_once_with("web")
        assert registry.get("data").volume_id == "vol-0service000000001"

    def test_mount_unknown_volume(self, client, mock_mounter):
        response = client.post("/VolumeDriver.Mount", json={"Name": "ghost"})

        assert response.status_code == 200
        assert response.json() == {"Mountpoint": "", "Err": "Volume 'ghost' not found"}
        mock_mounter.mount.assert_not_awaited()

    def test_double_mount(self, client, mock_mounter):
        client.post("/VolumeDriver.Create", json={"Name": "vol1"})
        first = client.post("/VolumeDriver.Mount", json={"Name": "vol1"}).json()

        second = client.post("/VolumeDriver.Mount", json={"Name": "vol1"}).json()

        assert second["Mountpoint"] == ""
        assert "already mounted" in second["Err"]
        assert client.post("/VolumeDriver.Path", json={"Name": "vol1"}).json()["Mountpoint"] == first["Mountpoint"]
        assert mock_mounter.mount.await_count == 1

    def test_mount_failure_reported(self, client, mock_mounter):
        mock_mounter.mount.side_effect = MountOperationError(
            "Mounting", "device /dev/sdf to /mnt/blocker/x", "exit status 32: bad superblock"
        )
        client.post("/VolumeDriver.Create", json={"Name": "vol1"})

        response = client.post("/VolumeDriver.Mount", json={"Name": "vol1"})

        assert response.status_code == 200
        assert response.json()["Mountpoint"] == ""
        assert "bad superblock" in response.json()["Err"]

    def test_unmount_not_mounted(self, client, mock_mounter):
        client.post("/VolumeDriver.Create", json={"Name": "vol1"})

        response = client.post("/VolumeDriver.Unmount", json={"Name": "vol1"})

        assert response.json() == {"Err": ""}
        mock_mounter.unmount.assert_not_awaited()

    def test_remove_unknown(self, client):
        response = client.post("/VolumeDriver.Remove", json={"Name": "ghost"})

        assert response.json() == {"Err": "Volume 'ghost' not found"}

    def test_docker_content_type(self, client):
        response = client.post(
            "/VolumeDriver.Create",
            content=json.dumps({"Name": "vol1", "Opts": {}}),
            headers={"Content-Type": DOCKER_CONTENT_TYPE},
        )

        assert response.status_code == 200
        assert response.json() == {"Err": ""}


class TestInspection:
    """Tests for Get/List/Capabilities."""

    def test_get(self, client):
        client.post("/VolumeDriver.Create", json={"Name": "vol1"})
        mountpoint = client.post("/VolumeDriver.Mount", json={"Name": "vol1"}).json()["Mountpoint"]

        response = client.post("/VolumeDriver.Get", json={"Name": "vol1"})

        data = response.json()
        assert data["Err"] == ""
        assert data["Volume"]["Name"] == "vol1"
        assert data["Volume"]["Mountpoint"] == mountpoint

    def test_get_unknown(self, client):
        response = client.post("/VolumeDriver.Get", json={"Name": "ghost"})

        data = response.json()
        assert data["Volume"] is None
        assert data["Err"] == "Volume 'ghost' not found"

    def test_list(self, client):
        client.post("/VolumeDriver.Create", json={"Name": "beta"})
        client.post("/VolumeDriver.Create", json={"Name": "alpha"})

        response = client.post("/VolumeDriver.List", json={})

        data = response.json()
        assert data["Err"] == ""
        assert [v["Name"] for v in data["Volumes"]] == ["alpha", "beta"]
        assert all(v["Mountpoint"] == "" for v in data["Volumes"])

    def test_capabilities(self, client):
        response = client.post("/VolumeDriver.Capabilities")

        assert response.json() == {"Capabilities": {"Scope": "local"}}


class TestErrorHandling:
    """Tests for malformed requests and unexpected failures."""

    def test_missing_name(self, client):
        response = client.post("/VolumeDriver.Create", json={"Opts": {}})

        assert response.status_code == 400
        assert "Invalid request" in response.json()["Err"]

    def test_invalid_json(self, client):
        response = client.post(
            "/VolumeDriver.Mount",
            content="{not json",
            headers={"Content-Type": DOCKER_CONTENT_TYPE},
        )

        assert response.status_code == 400

    def test_unexpected_error(self, config, registry, mock_mounter):
        mock_mounter.mount.side_effect = RuntimeError("boom")
        client = TestClient(create_app(config, registry=registry), raise_server_exceptions=False)
        client.post("/VolumeDriver.Create", json={"Name": "vol1"})

        response = client.post("/VolumeDriver.Mount", json={"Name": "vol1"})

        assert response.status_code == 500
        assert response.json() == {"Err": "boom"}


class TestLifespan:
    """Tests for application startup."""

    def test_injected_registry_used(self, config, registry):
        with TestClient(create_app(config, registry=registry)) as client:
            client.post("/VolumeDriver.Create", json={"Name": "vol1"})

        assert registry.get("vol1").name == "vol1"

    def test_registry_built_at_startup(self, config, registry, identity):
        with patch(
            "ebs_blocker.api.rest.fetch_instance_identity",
            new=AsyncMock(return_value=identity),
        ) as fetch, patch(
            "ebs_blocker.api.rest.create_registry",
            return_value=registry,
        ) as build:
            app = create_app(config)
            with TestClient(app) as client:
                response = client.post("/VolumeDriver.Create", json={"Name": "vol1"})

        assert response.json() == {"Err": ""}
        fetch.assert_awaited_once_with(config)
        build.assert_called_once_with(config, identity)
        assert app.state.registry is registry

    def test_identity_failure_aborts_startup(self, config):
        with patch(
            "ebs_blocker.api.rest.fetch_instance_identity",
            new=AsyncMock(side_effect=InstanceIdentityError("no metadata service")),
        ):
            with pytest.raises(InstanceIdentityError):
                with TestClient(create_app(config)):
                    pass


class TestRequestModels:
    def test_volume_request(self):
        request = VolumeRequest(Name="vol1", Opts={"volume_id": "vol-1"}, ID="abc")

        assert request.Name == "vol1"
        assert request.Opts == {"volume_id": "vol-1"}

    def test_volume_request_requires_name(self):
        with pytest.raises(ValueError):
            VolumeRequest()
