"""
Tests for the snapshot-filter-apply sweeps and the invite/reset expiry rules.
"""

import pytest

from adminkit.constants import INVITE_BUCKET, PASS_RESET_BUCKET
from adminkit.errors import KeyNotFound
from adminkit.records import ACCEPTED, CANCELLED, PENDING, Invite, PassReset
from adminkit.storage import collect, delete_keys, sweep


def _invite(uuid, status, expiry):
    return Invite(
        uuid=uuid,
        email=f"{uuid}@example.com",
        role="finance",
        status=status,
        last_modified=0,
        created_on=0,
        expiry=expiry,
        invited_by="admin",
    )


def _reset(uuid, expiry, used=False):
    return PassReset(
        uuid=uuid,
        email=f"{uuid}@example.com",
        user=uuid,
        expiry=expiry,
        last_modified=0,
        created_on=0,
        reset_url=f"https://example.com/reset/{uuid}",
        used=used,
    )


def _stale_invite(now):
    return lambda invite: invite.is_stale(now)


class TestInviteExpiry:
    """Test which invites a sweep removes."""

    @pytest.mark.parametrize("status,offset,stale", [
        (PENDING, -10, False),
        (PENDING, 10, False),
        (ACCEPTED, -10, True),
        (ACCEPTED, 10, False),
        (CANCELLED, -10, True),
        (CANCELLED, 10, True),
    ])
    def test_is_stale(self, clock, status, offset, stale):
        assert _invite("a", status, int(clock()) + offset).is_stale(clock()) is stale

    def test_sweep(self, store, db, clock):
        now = int(clock())
        db.put_invite(_invite("pending", PENDING, now - 10))
        db.put_invite(_invite("cancelled", CANCELLED, now + 10))
        db.put_invite(_invite("accepted", ACCEPTED, now - 10))
        db.put_invite(_invite("fresh", ACCEPTED, now + 10))

        deleted = sweep(store, INVITE_BUCKET, _stale_invite(clock()), Invite.from_json)

        assert sorted(deleted) == [b"accepted", b"cancelled"]
        assert db.get_invite("pending").status == PENDING
        assert db.get_invite("fresh").status == ACCEPTED
        with pytest.raises(KeyNotFound):
            db.get_invite("cancelled")

    def test_sweep_is_idempotent(self, store, db, clock):
        db.put_invite(_invite("cancelled", CANCELLED, int(clock())))

        assert sweep(store, INVITE_BUCKET, _stale_invite(clock()), Invite.from_json) == [b"cancelled"]
        assert sweep(store, INVITE_BUCKET, _stale_invite(clock()), Invite.from_json) == []


class TestPassResetExpiry:
    """Test which password resets a sweep removes."""

    def test_sweep(self, store, db, clock):
        now = int(clock())
        db.put_pass_reset(_reset("expired", now - 10))
        db.put_pass_reset(_reset("used", now - 10, used=True))
        db.put_pass_reset(_reset("live", now + 10))

        deleted = sweep(
            store, PASS_RESET_BUCKET, lambda r: r.is_stale(clock()), PassReset.from_json
        )

        assert deleted == [b"expired"]
        assert db.get_pass_reset("used").used
        assert db.get_pass_reset("live").expiry == now + 10

    def test_sanitized_drops_url(self):
        reset = _reset("a", 0)
        assert reset.sanitized().reset_url == ""
        assert reset.reset_url != ""


class TestCollect:
    """Test the two phases on their own."""

    def test_collect_does_not_mutate(self, store, db, clock):
        db.put_invite(_invite("cancelled", CANCELLED, 0))

        keys = collect(store, INVITE_BUCKET, _stale_invite(clock()), Invite.from_json)

        assert keys == [b"cancelled"]
        assert db.get_invite("cancelled").status == CANCELLED

    def test_raw_values_without_decode(self, store):
        with store.update() as tx:
            tx.bucket(INVITE_BUCKET).put("k1", b"keep")
            tx.bucket(INVITE_BUCKET).put("k2", b"drop")

        assert collect(store, INVITE_BUCKET, lambda v: v == b"drop") == [b"k2"]

    def test_delete_nothing(self, store):
        delete_keys(store, INVITE_BUCKET, [])

    def test_missing_bucket(self, store):
        with pytest.raises(KeyNotFound):
            collect(store, b"nope", lambda _: True)
        with pytest.raises(KeyNotFound):
            delete_keys(store, b"nope", [b"k"])
