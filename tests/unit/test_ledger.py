"""Tests for ledger transactions and state export."""

import json
import threading

import pytest
from structlog.testing import capture_logs

from dex.config import DexConfig
from dex.constants import ONE
from dex.errors import InsufficientBalance, PairExists
from dex.ledger import Ledger
from dex.models import LedgerSnapshot
from dex.routing.router import Router
from tests.helpers import TOKEN_A, TOKEN_B, TOKEN_C, USER1, USER2


@pytest.fixture
def populated() -> Ledger:
    ledger = Ledger()
    pool = ledger.registry.get_pool(ledger.registry.create_pair(TOKEN_A, TOKEN_B))
    pool.mint(400, 900, USER1)
    ledger.tokens.mint(TOKEN_A, pool.pool_id, 400)
    ledger.tokens.mint(TOKEN_B, pool.pool_id, 900)
    ledger.tokens.mint(TOKEN_A, USER1, 1_000)
    ledger.tokens.approve(TOKEN_A, USER1, "dex-router", 250)
    return ledger


class TestTransaction:
    """Tests for all-or-nothing execution."""

    def test_commit(self, populated: Ledger):
        with populated.transaction("test"):
            populated.tokens.transfer(TOKEN_A, USER1, USER2, 100)
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 100

    def test_rollback_restores_everything(self, populated: Ledger):
        pool = populated.registry.pool_for(TOKEN_A, TOKEN_B)

        with pytest.raises(InsufficientBalance):
            with populated.transaction("test"):
                populated.registry.create_pair(TOKEN_B, TOKEN_C)
                pool.swap(100, TOKEN_A)
                populated.tokens.transfer(TOKEN_A, USER1, USER2, 100)
                populated.tokens.transfer(TOKEN_A, USER1, USER2, 10_000)

        assert populated.registry.all_pairs_length() == 1
        assert populated.registry.get_pair(TOKEN_B, TOKEN_C) is None
        assert pool.get_reserves() == (400, 900)
        assert populated.tokens.balance_of(TOKEN_A, USER1) == 1_000
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 0

    def test_rollback_on_non_dex_error(self, populated: Ledger):
        with pytest.raises(KeyError):
            with populated.transaction("test"):
                populated.tokens.transfer(TOKEN_A, USER1, USER2, 100)
                raise KeyError("boom")
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 0

    def test_rollback_logged(self, populated: Ledger):
        with capture_logs() as logs:
            with pytest.raises(PairExists):
                with populated.transaction("create_pair"):
                    populated.registry.create_pair(TOKEN_A, TOKEN_B)
        rollback = [entry for entry in logs if entry["event"] == "transaction_rolled_back"]
        assert rollback == [
            {
                "event": "transaction_rolled_back",
                "log_level": "warning",
                "operation": "create_pair",
                "error": "PairExists",
                "reason": "PAIR_EXISTS",
            }
        ]

    def test_nested_transaction_joins_outer(self, populated: Ledger):
        """An inner failure caught inside the outer block is not rolled back separately."""
        with populated.transaction("outer"):
            populated.tokens.transfer(TOKEN_A, USER1, USER2, 100)
            try:
                with populated.transaction("inner"):
                    populated.tokens.transfer(TOKEN_A, USER1, USER2, 50)
                    raise ValueError("inner failure")
            except ValueError:
                pass
            assert populated.in_transaction
        assert not populated.in_transaction
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 150

    def test_outer_failure_rewinds_inner_work(self, populated: Ledger):
        with pytest.raises(ValueError):
            with populated.transaction("outer"):
                with populated.transaction("inner"):
                    populated.tokens.transfer(TOKEN_A, USER1, USER2, 50)
                raise ValueError("outer failure")
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 0

    def test_depth_reset_after_failure(self, populated: Ledger):
        with pytest.raises(RuntimeError):
            with populated.transaction():
                raise RuntimeError
        assert not populated.in_transaction

    def test_transactions_are_serialized(self, populated: Ledger):
        """Concurrent transfers never interleave inside a transaction."""
        populated.tokens.mint(TOKEN_C, USER1, 10_000)

        def worker():
            for _ in range(100):
                with populated.transaction("worker"):
                    balance = populated.tokens.balance_of(TOKEN_C, USER2)
                    populated.tokens.transfer(TOKEN_C, USER1, USER2, 1)
                    assert populated.tokens.balance_of(TOKEN_C, USER2) == balance + 1

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert populated.tokens.balance_of(TOKEN_C, USER2) == 400
        assert populated.tokens.balance_of(TOKEN_C, USER1) == 9_600


class TestJournaling:
    """Rollback saves only what a transaction touches."""

    def test_only_touched_pools_are_saved(self, populated: Ledger):
        untouched = populated.registry.get_pool(populated.registry.create_pair(TOKEN_B, TOKEN_C))
        untouched.mint(50, 50, USER2)
        pool = populated.registry.pool_for(TOKEN_A, TOKEN_B)

        checkpoint = populated.checkpoint()
        pool.swap(100, TOKEN_A)
        pool.swap(10, TOKEN_B)

        assert list(checkpoint.registry.pools) == [pool.pool_id]
        assert checkpoint.registry.pools[pool.pool_id].reserve_a == 400
        populated.restore(checkpoint)
        assert pool.get_reserves() == (400, 900)
        assert untouched.get_reserves() == (50, 50)

    def test_release_stops_journaling(self, populated: Ledger):
        pool = populated.registry.pool_for(TOKEN_A, TOKEN_B)
        checkpoint = populated.checkpoint()
        populated.release(checkpoint)
        pool.swap(10, TOKEN_B)
        populated.tokens.transfer(TOKEN_A, USER1, USER2, 1)

        assert checkpoint.registry.pools == {}
        assert checkpoint.tokens.writes == []

    def test_rollback_leaves_snapshot_unchanged(self, populated: Ledger):
        before = populated.snapshot()
        pool = populated.registry.pool_for(TOKEN_A, TOKEN_B)

        with pytest.raises(InsufficientBalance):
            with populated.transaction("test"):
                pool.approve(USER1, "dex-router", 10)
                pool.burn(100, USER1)
                populated.tokens.approve(TOKEN_B, USER2, "dex-router", 5)
                populated.tokens.transfer(TOKEN_A, USER1, USER2, 10_000)

        assert populated.snapshot() == before


class TestReadIsolation:
    """Reads never see another thread's open transaction."""

    def test_reads_wait_for_open_transaction(self, seeded_router: Router, ledger: Ledger):
        pool = ledger.registry.pool_for(TOKEN_A, TOKEN_B)
        path = [TOKEN_A, TOKEN_B]
        before = seeded_router.get_reserves(pool.pool_id)
        quote_before = seeded_router.get_amounts_out(10 * ONE, path)
        swapped = threading.Event()
        release = threading.Event()
        seen = []

        class Abort(Exception):
            pass

        def writer():
            try:
                with ledger.transaction("writer"):
                    pool.swap(100 * ONE, TOKEN_A)
                    swapped.set()
                    release.wait(timeout=5)
                    raise Abort
            except Abort:
                pass

        def reader():
            seen.append(seeded_router.get_reserves(pool.pool_id))
            seen.append(seeded_router.get_amounts_out(10 * ONE, path))

        writer_thread = threading.Thread(target=writer)
        writer_thread.start()
        assert swapped.wait(timeout=5)

        reader_thread = threading.Thread(target=reader)
        reader_thread.start()
        reader_thread.join(timeout=0.2)
        try:
            # Still blocked on the ledger lock
            assert reader_thread.is_alive()
            assert seen == []
        finally:
            release.set()
            writer_thread.join(timeout=5)
            reader_thread.join(timeout=5)

        assert seen == [before, quote_before]
        assert pool.get_reserves() == before

    def test_read_inside_own_transaction_sees_its_writes(
        self, seeded_router: Router, ledger: Ledger
    ):
        pool = ledger.registry.pool_for(TOKEN_A, TOKEN_B)
        with ledger.transaction("test"):
            pool.swap(100 * ONE, TOKEN_A)
            assert seeded_router.get_reserves(pool.pool_id)[0] == 600 * ONE


class TestSnapshot:
    """Tests for exporting and restoring ledger state."""

    def test_snapshot_contents(self, populated: Ledger):
        snapshot = populated.snapshot()
        assert len(snapshot.pools) == 1
        assert snapshot.pools[0].reserve_a == 400
        assert {(e.asset, e.owner) for e in snapshot.balances} >= {(TOKEN_A, USER1)}
        assert len(snapshot.allowances) == 1

    def test_json_amounts_are_strings(self, populated: Ledger):
        populated.tokens.mint(TOKEN_C, USER2, 2**200)
        data = json.loads(populated.snapshot().model_dump_json(by_alias=True))

        assert data["pools"][0]["reserveB"] == "900"
        big = [entry for entry in data["balances"] if entry["asset"] == TOKEN_C]
        assert big == [{"asset": TOKEN_C, "owner": USER2, "amount": str(2**200)}]

    def test_round_trip_through_json(self, populated: Ledger):
        raw = populated.snapshot().model_dump_json(by_alias=True)

        restored = Ledger.from_snapshot(LedgerSnapshot.model_validate_json(raw))

        pool = restored.registry.pool_for(TOKEN_A, TOKEN_B)
        assert pool.get_reserves() == (400, 900)
        assert pool.share_balance(USER1) == 600
        assert restored.tokens.balance_of(TOKEN_A, USER1) == 1_000
        assert restored.tokens.allowance(TOKEN_A, USER1, "dex-router") == 250
        assert restored.registry.all_pairs(0) == populated.registry.all_pairs(0)

    def test_restored_ledger_is_independent(self, populated: Ledger):
        restored = Ledger.from_snapshot(populated.snapshot())
        restored.tokens.transfer(TOKEN_A, USER1, USER2, 1)
        assert populated.tokens.balance_of(TOKEN_A, USER2) == 0

    def test_restore_uses_config(self, populated: Ledger):
        config = DexConfig(fee_bps=5)
        restored = Ledger.from_snapshot(populated.snapshot(), config)
        assert restored.config is config
        # Existing pools keep their own fee
        assert restored.registry.pool_for(TOKEN_A, TOKEN_B).fee_bps == 30
        pool_id = restored.registry.create_pair(TOKEN_B, TOKEN_C)
        assert restored.registry.get_pool(pool_id).fee_bps == 5

    def test_duplicate_pool_rejected(self, populated: Ledger):
        snapshot = populated.snapshot()
        doubled = snapshot.model_copy(update={"pools": snapshot.pools * 2})
        with pytest.raises(PairExists):
            Ledger.from_snapshot(doubled)

    def test_restore_logged(self, populated: Ledger):
        with capture_logs() as logs:
            Ledger.from_snapshot(populated.snapshot())
        assert any(entry["event"] == "ledger_restored" for entry in logs)
