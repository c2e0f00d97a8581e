"""Tests for PairRegistry."""

import pytest
from structlog.testing import capture_logs

from dex.assets import pair_id
from dex.errors import IdenticalAssets, InvalidInput, PairExists, PairNotFound
from dex.pools import PairRegistry
from tests.helpers import TOKEN_A, TOKEN_B, TOKEN_C, TOKEN_D


@pytest.fixture
def registry() -> PairRegistry:
    return PairRegistry()


class TestPairRegistryBasics:
    """Tests for pair creation and lookup."""

    def test_empty_registry(self, registry: PairRegistry):
        assert len(registry) == 0
        assert registry.all_pairs_length() == 0
        assert registry.get_pair(TOKEN_A, TOKEN_B) is None

    def test_create_pair(self, registry: PairRegistry):
        pool_id = registry.create_pair(TOKEN_A, TOKEN_B)

        assert pool_id == pair_id(TOKEN_A, TOKEN_B)
        assert registry.all_pairs_length() == 1
        assert registry.get_pair(TOKEN_A, TOKEN_B) == pool_id

    def test_lookup_is_order_independent(self, registry: PairRegistry):
        pool_id = registry.create_pair(TOKEN_B, TOKEN_A)
        assert registry.get_pair(TOKEN_A, TOKEN_B) == pool_id
        assert registry.get_pair(TOKEN_B, TOKEN_A) == pool_id

    def test_created_pool_is_canonical_and_empty(self, registry: PairRegistry):
        pool = registry.get_pool(registry.create_pair(TOKEN_B, TOKEN_A))
        assert (pool.asset_a, pool.asset_b) == (TOKEN_A, TOKEN_B)
        assert pool.get_reserves() == (0, 0)
        assert pool.total_shares == 0

    def test_lookup_is_case_insensitive_for_hex(self, registry: PairRegistry):
        pool_id = registry.create_pair(TOKEN_A, TOKEN_B)
        assert registry.get_pair(TOKEN_A.upper(), TOKEN_B) == pool_id
        assert registry.get_pool(pool_id.upper().replace("0X", "0x")) is registry.get_pool(
            pool_id
        )

    def test_get_pair_never_creates(self, registry: PairRegistry):
        registry.get_pair(TOKEN_A, TOKEN_B)
        registry.pool_for(TOKEN_A, TOKEN_B)
        assert registry.all_pairs_length() == 0


class TestPairRegistryErrors:
    def test_duplicate_pair(self, registry: PairRegistry):
        registry.create_pair(TOKEN_A, TOKEN_B)
        with pytest.raises(PairExists) as exc_info:
            registry.create_pair(TOKEN_B, TOKEN_A)
        assert exc_info.value.reason == "PAIR_EXISTS"
        assert registry.all_pairs_length() == 1

    def test_identical_assets(self, registry: PairRegistry):
        with pytest.raises(IdenticalAssets):
            registry.create_pair(TOKEN_A, TOKEN_A)
        with pytest.raises(IdenticalAssets):
            registry.create_pair(TOKEN_A, TOKEN_A.upper())
        assert registry.all_pairs_length() == 0

    def test_empty_asset(self, registry: PairRegistry):
        with pytest.raises(InvalidInput):
            registry.create_pair("", TOKEN_A)

    def test_unknown_pool_id(self, registry: PairRegistry):
        with pytest.raises(PairNotFound):
            registry.get_pool("0x" + "00" * 20)

    def test_require_pool_missing(self, registry: PairRegistry):
        with pytest.raises(PairNotFound):
            registry.require_pool(TOKEN_A, TOKEN_B)

    @pytest.mark.parametrize("index", [-1, 1, 5])
    def test_all_pairs_out_of_range(self, registry: PairRegistry, index: int):
        registry.create_pair(TOKEN_A, TOKEN_B)
        with pytest.raises(InvalidInput):
            registry.all_pairs(index)


class TestPairRegistryEnumeration:
    def test_all_pairs_in_creation_order(self, registry: PairRegistry):
        ids = [
            registry.create_pair(TOKEN_C, TOKEN_D),
            registry.create_pair(TOKEN_A, TOKEN_B),
            registry.create_pair(TOKEN_A, TOKEN_C),
        ]
        assert [registry.all_pairs(i) for i in range(3)] == ids
        assert [pool.pool_id for pool in registry.pools()] == ids

    def test_pools_returns_copy(self, registry: PairRegistry):
        registry.create_pair(TOKEN_A, TOKEN_B)
        registry.pools().clear()
        assert registry.all_pairs_length() == 1


class TestPairRegistryFees:
    def test_default_fee(self, registry: PairRegistry):
        pool = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B))
        assert pool.fee_bps == 30

    def test_registry_default_fee(self):
        registry = PairRegistry(default_fee_bps=5)
        pool = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B))
        assert pool.fee_bps == 5

    def test_explicit_fee(self, registry: PairRegistry):
        pool = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B, fee_bps=100))
        assert pool.fee_bps == 100

    def test_invalid_default_fee(self):
        with pytest.raises(InvalidInput):
            PairRegistry(default_fee_bps=-1)

    @pytest.mark.parametrize("fee_bps", [-1, 10_000])
    def test_invalid_explicit_fee(self, registry: PairRegistry, fee_bps):
        with pytest.raises(InvalidInput) as exc_info:
            registry.create_pair(TOKEN_A, TOKEN_B, fee_bps=fee_bps)
        assert exc_info.value.reason == "INVALID_INPUT"
        assert registry.all_pairs_length() == 0


class TestPairRegistryRollback:
    def test_restore_drops_new_pairs(self, registry: PairRegistry):
        first = registry.create_pair(TOKEN_A, TOKEN_B)
        saved = registry.checkpoint()
        second = registry.create_pair(TOKEN_B, TOKEN_C)

        registry.restore(saved)

        assert registry.all_pairs_length() == 1
        assert registry.get_pair(TOKEN_B, TOKEN_C) is None
        assert registry.get_pool(first).pool_id == first
        with pytest.raises(PairNotFound):
            registry.get_pool(second)
        # The pair can be created again afterwards
        assert registry.create_pair(TOKEN_B, TOKEN_C) == second

    def test_restore_rewinds_existing_pools_in_place(self, registry: PairRegistry):
        pool = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B))
        pool.mint(400, 900, "lp")
        saved = registry.checkpoint()
        pool.swap(100, TOKEN_A)

        registry.restore(saved)

        assert registry.get_pool(pool.pool_id) is pool
        assert pool.get_reserves() == (400, 900)

    def test_restore_drops_new_pair_that_was_written(self, registry: PairRegistry):
        saved = registry.checkpoint()
        pool = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B))
        pool.mint(400, 900, "lp")

        registry.restore(saved)

        assert registry.all_pairs_length() == 0
        assert pool.on_write is None

    def test_untouched_pools_are_not_saved(self, registry: PairRegistry):
        first = registry.get_pool(registry.create_pair(TOKEN_A, TOKEN_B))
        second = registry.get_pool(registry.create_pair(TOKEN_B, TOKEN_C))
        first.mint(400, 900, "lp")
        second.mint(100, 100, "lp")

        saved = registry.checkpoint()
        second.approve("lp", "router", 5)

        assert list(saved.pools) == [second.pool_id]
        registry.restore(saved)
        assert second.allowance("lp", "router") == 0


def test_pair_created_logged(registry: PairRegistry):
    with capture_logs() as logs:
        pool_id = registry.create_pair(TOKEN_A, TOKEN_B)
    assert logs == [
        {
            "event": "pair_created",
            "log_level": "info",
            "pool_id": pool_id,
            "asset_a": TOKEN_A,
            "asset_b": TOKEN_B,
            "fee_bps": 30,
            "index": 0,
        }
    ]
