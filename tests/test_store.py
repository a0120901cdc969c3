"""
Tests for the bucketed key-value store.
"""

import threading

import pytest

from adminkit.errors import StorageError
from adminkit.storage import Store


class TestBuckets:
    """Test bucket creation, reads and writes."""

    def test_put_and_get(self, store):
        with store.update() as tx:
            tx.bucket(b"user").put(b"alice", b"{}")

        with store.view() as tx:
            assert tx.bucket(b"user").get(b"alice") == b"{}"
            assert tx.bucket(b"user").get(b"bob") is None

    def test_missing_bucket(self, store):
        with store.view() as tx:
            assert tx.bucket(b"nope") is None

    def test_items_are_key_ordered(self, store):
        with store.update() as tx:
            bucket = tx.bucket(b"invite")
            for key in (b"c", b"a", b"b"):
                bucket.put(key, key.upper())

        with store.view() as tx:
            assert list(tx.bucket(b"invite").items()) == [(b"a", b"A"), (b"b", b"B"), (b"c", b"C")]

    def test_nested_buckets(self, store):
        with store.update() as tx:
            day = tx.bucket(b"log").create_bucket_if_not_exists("19-Oct-2026")
            day.create_bucket_if_not_exists("token-1").put(b"record", b"")
            day.create_bucket_if_not_exists("token-2")

        with store.view() as tx:
            log = tx.bucket(b"log")
            assert log.buckets() == ["19-Oct-2026"]
            assert log.bucket("19-Oct-2026").buckets() == ["token-1", "token-2"]
            assert log.bucket("19-Oct-2026").bucket("token-1").keys() == [b"record"]
            assert len(log) == 0

    def test_delete_missing_key_is_not_an_error(self, store):
        with store.update() as tx:
            tx.bucket(b"user").delete(b"ghost")

    def test_create_buckets_is_idempotent(self, store):
        store.create_buckets([b"user", b"extra"])
        with store.view() as tx:
            assert tx.bucket(b"extra") is not None


class TestTransactions:
    """Test transaction rules."""

    def test_view_is_read_only(self, store):
        with store.view() as tx:
            with pytest.raises(StorageError):
                tx.bucket(b"user").put(b"k", b"v")

    def test_no_mutation_while_iterating(self, store):
        with store.update() as tx:
            bucket = tx.bucket(b"invite")
            bucket.put(b"a", b"1")
            bucket.put(b"b", b"2")

        with store.update() as tx:
            bucket = tx.bucket(b"invite")
            with pytest.raises(StorageError, match="iteration"):
                for key, _ in bucket.items():
                    bucket.delete(key)

        with store.view() as tx:
            assert len(tx.bucket(b"invite")) == 2

    def test_mutation_allowed_after_iteration(self, store):
        with store.update() as tx:
            bucket = tx.bucket(b"invite")
            bucket.put(b"a", b"1")
            keys = bucket.keys()
            for key in keys:
                bucket.delete(key)

        with store.view() as tx:
            assert len(tx.bucket(b"invite")) == 0

    def test_failed_update_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.update() as tx:
                tx.bucket(b"user").put(b"alice", b"{}")
                raise RuntimeError("boom")

        with store.view() as tx:
            assert tx.bucket(b"user").get(b"alice") is None

    def test_failed_rollback_keeps_original_error(self, store):
        with pytest.raises(RuntimeError, match="boom"):
            with store.update() as tx:
                tx._conn.close()
                raise RuntimeError("boom")

    def test_update_holds_global_write_lock(self, store):
        assert not store.write_lock.locked()
        with store.update():
            assert store.write_lock.locked()
        assert not store.write_lock.locked()

    def test_readers_do_not_take_write_lock(self, store):
        with store.view():
            assert not store.write_lock.locked()

    def test_concurrent_writers_are_serialized(self, store):
        def write(n):
            for i in range(20):
                with store.update() as tx:
                    tx.bucket(b"feedback").put(f"{n}-{i}", b"x")

        threads = [threading.Thread(target=write, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        with store.view() as tx:
            assert len(tx.bucket(b"feedback")) == 80

    def test_closed_store_rejects_transactions(self, store):
        store.close()
        with pytest.raises(StorageError):
            with store.view():
                pass


class TestOpen:
    """Test opening the store."""

    def test_open_times_out_while_locked(self, store):
        with store.update():
            with pytest.raises(StorageError):
                Store(store.db_path, timeout=0.1)

    def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "data.db"
        first = Store(path)
        first.create_buckets([b"user"])
        with first.update() as tx:
            tx.bucket(b"user").put(b"alice", b"{}")
        first.close()

        second = Store(path)
        with second.view() as tx:
            assert tx.bucket(b"user").get(b"alice") == b"{}"
        second.close()

    def test_second_store_rejected_while_open(self, store):
        with pytest.raises(StorageError):
            Store(store.db_path, timeout=0.1)

        with store.update() as tx:
            tx.bucket(b"user").put(b"alice", b"{}")

    def test_lock_released_on_close(self, tmp_path):
        path = tmp_path / "data.db"
        first = Store(path)
        assert first.lock_path.exists()
        first.close()

        second = Store(path, timeout=0.1)
        assert not second.closed
        second.close()
