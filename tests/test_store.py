"""Tests for application records and the SQLite store."""

from __future__ import annotations

import pytest
from conftest import make_app

from appwatch.apps.models import Application, ValidationError
from appwatch.apps.store import AppNotFoundError, AppStore


def _new(**overrides) -> Application:
    fields = {"name": "Grafana", "host": "10.0.0.20", "port": 3000}
    fields.update(overrides)
    return Application(**fields)


class TestValidation:
    def test_valid(self) -> None:
        make_app().validate()

    @pytest.mark.parametrize("port", [0, -1, 65536, 70000])
    def test_port_out_of_range(self, port: int) -> None:
        with pytest.raises(ValidationError, match="port"):
            make_app(port=port).validate()

    @pytest.mark.parametrize("port", [1, 443, 65535])
    def test_port_bounds(self, port: int) -> None:
        make_app(port=port).validate()

    def test_invalid_protocol(self) -> None:
        with pytest.raises(ValidationError, match="protocol"):
            make_app(protocol="ftp").validate()

    def test_tcp_protocol_allowed(self) -> None:
        make_app(protocol="tcp", health_type="tcp").validate()

    def test_all_problems_reported(self) -> None:
        with pytest.raises(ValidationError) as exc:
            make_app(name=" ", host="", health_type="icmp").validate()
        message = str(exc.value)
        assert "name is required" in message
        assert "host is required" in message
        assert "health_type" in message

    def test_resource_link(self) -> None:
        make_app(resource_type="lxc", resource_id="200").validate()
        with pytest.raises(ValidationError, match="resource_type"):
            make_app(resource_type="k8s", resource_id="1").validate()
        with pytest.raises(ValidationError, match="resource_id"):
            make_app(resource_type="vm").validate()

    def test_invalid_icon(self) -> None:
        with pytest.raises(ValidationError, match="icon"):
            make_app(icon="rocket").validate()


class TestAppStore:
    def test_create_assigns_id(self, store: AppStore) -> None:
        first = store.create(_new())
        second = store.create(_new(name="Proxy"))
        assert first.id > 0
        assert second.id > first.id
        assert first.created_at == first.updated_at

    def test_get_round_trip(self, store: AppStore) -> None:
        created = store.create(_new(tag="monitoring", resource_type="docker", resource_id="abc123"))
        loaded = store.get(created.id)
        assert loaded == created
        assert loaded.resource_node is None

    def test_get_missing(self, store: AppStore) -> None:
        assert store.get(999) is None

    def test_list_all_ordered(self, store: AppStore) -> None:
        for name in ("b", "a", "c"):
            store.create(_new(name=name))
        assert [a.name for a in store.list_all()] == ["b", "a", "c"]

    def test_create_rejects_invalid(self, store: AppStore) -> None:
        with pytest.raises(ValidationError):
            store.create(_new(port=0))
        assert store.list_all() == []

    def test_update(self, store: AppStore) -> None:
        created = store.create(_new())
        updated = store.update(created.id, port=3001, tag="ops", bogus="ignored")
        assert updated.port == 3001
        assert updated.tag == "ops"
        assert updated.name == "Grafana"
        assert updated.updated_at >= created.updated_at

    def test_update_clears_link(self, store: AppStore) -> None:
        created = store.create(_new(resource_type="vm", resource_id="100", resource_node="pve1"))
        updated = store.update(created.id, resource_type=None, resource_id=None, resource_node=None)
        assert updated.resource_type is None
        assert updated.resource_kind is None

    def test_update_validates_merged_record(self, store: AppStore) -> None:
        created = store.create(_new())
        with pytest.raises(ValidationError):
            store.update(created.id, protocol="gopher")
        assert store.get(created.id).protocol == "http"

    def test_update_missing(self, store: AppStore) -> None:
        with pytest.raises(AppNotFoundError) as exc:
            store.update(42, name="x")
        assert exc.value.app_id == 42
        assert str(exc.value) == "Application 42 not found"

    def test_delete(self, store: AppStore) -> None:
        created = store.create(_new())
        store.delete(created.id)
        assert store.get(created.id) is None

    def test_delete_missing(self, store: AppStore) -> None:
        with pytest.raises(AppNotFoundError):
            store.delete(7)

    def test_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / "nested" / "apps.db"
        AppStore(path).create(_new())
        assert len(AppStore(path).list_all()) == 1
