"""Tests for deterministic hashing and the injectable clocks."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest

from dsm_kernel.domain.clock import DeterministicClock, SystemClock
from dsm_kernel.domain.workflow import Role
from dsm_kernel.utils.hashing import canonicalize_json, hash_payload


class TestHashing:

    def test_key_order_irrelevant(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_sha256_hex(self):
        digest = hash_payload({"config_id": "default"})
        assert len(digest) == 64
        int(digest, 16)

    def test_special_types(self):
        uid = UUID("12345678-1234-5678-1234-567812345678")
        when = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert canonicalize_json({"role": Role.BUYER, "id": uid, "at": when}) == (
            '{"at":"2024-01-01T00:00:00+00:00",'
            '"id":"12345678-1234-5678-1234-567812345678","role":"BUYER"}'
        )

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"value": object()})


class TestClocks:

    def test_deterministic_clock_is_fixed(self, deterministic_clock):
        assert deterministic_clock.now() == deterministic_clock.now()
        assert deterministic_clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_advance_and_tick(self, deterministic_clock):
        start = deterministic_clock.now()
        deterministic_clock.advance(30)
        assert deterministic_clock.now() == start + timedelta(seconds=30)
        assert deterministic_clock.tick() == start + timedelta(seconds=31)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(5)
        target = datetime(2025, 6, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
