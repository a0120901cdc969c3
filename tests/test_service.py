"""
Tests for service startup and shutdown.
"""

import pytest

from adminkit.config import Config
from adminkit.constants import ADMIN_KEY
from adminkit.errors import KeyNotFound, StorageError
from adminkit.service import Service
from adminkit.storage import Store


@pytest.fixture
def config(tmp_path):
    return Config(
        admin_email="root@example.com",
        admin_pass="hunter2",
        storage=str(tmp_path / "adminkit.db"),
    )


class TestService:
    def test_start_creates_admin(self, config, clock):
        service = Service(config, clock)
        service.start(run_scheduler=False)
        try:
            admin = service.db.get_user_by_email("root@example.com")
            assert admin.role == "admin"
            assert service.db.cache_get(ADMIN_KEY) == admin.uuid.encode("utf-8")
            assert service.sessions.login("root@example.com", "hunter2").access == "admin"
        finally:
            service.shutdown()

    def test_admin_created_once(self, config, clock):
        service = Service(config, clock)
        service.start(run_scheduler=False)
        try:
            assert service.ensure_admin() is None
        finally:
            service.shutdown()

    def test_restart_restores_sessions(self, config, clock):
        service = Service(config, clock)
        service.start(run_scheduler=False)
        session = service.sessions.login("root@example.com", "hunter2")
        service.shutdown()

        restarted = Service(config, clock)
        restarted.start(run_scheduler=False)
        try:
            assert restarted.sessions.get_session(session.token) == session
        finally:
            restarted.shutdown()

    def test_shutdown_is_idempotent(self, config, clock):
        service = Service(config, clock)
        service.start()
        service.shutdown()
        service.shutdown()

        assert service.store.closed
        assert service.scheduler is None

    def test_store_locked_by_another_writer(self, config, clock):
        other = Store(config.storage)
        try:
            with other.update():
                service = Service(config, clock)
                with pytest.raises(StorageError):
                    service.start(run_scheduler=False)
        finally:
            other.close()

    def test_second_service_cannot_start(self, config, clock):
        first = Service(config, clock)
        first.start(run_scheduler=False)
        try:
            second = Service(config, clock)
            with pytest.raises(StorageError):
                second.start(run_scheduler=False)
        finally:
            first.shutdown()

        third = Service(config, clock)
        third.start(run_scheduler=False)
        third.shutdown()

    def test_long_admin_password_does_not_stop_startup(self, tmp_path, clock):
        config = Config.model_construct(
            admin_email="root@example.com",
            admin_pass="x" * 100,
            storage=str(tmp_path / "adminkit.db"),
        )
        service = Service(config, clock)
        service.start(run_scheduler=False)
        try:
            assert service.ensure_admin() is None
            with pytest.raises(KeyNotFound):
                service.db.get_user_by_email("root@example.com")
        finally:
            service.shutdown()
