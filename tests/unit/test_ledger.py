"""
Unit tests for the UTXO module.

Tests cover:
1. Genesis seeding
2. Spend: storage effects, fee credit, events, atomicity
3. Reward dispersal: shares, remainders, carry-forward, collisions
4. Reward pool lifecycle
5. Queries and statistics
"""

import pytest

from utxo_ledger.core.codec import U128_MAX
from utxo_ledger.core.errors import (
    IndexOverflow,
    InvalidSignature,
    MissingInput,
    Overflow,
    UtxoError,
)
from utxo_ledger.core.events import (
    EventLog,
    EventType,
    RewardPaid,
    RewardWasted,
    TransactionApplied,
)
from utxo_ledger.core.state import (
    InMemoryState,
    RewardPoolState,
    TransactionOutput,
    UtxoModule,
    create_transfer,
)
from utxo_ledger.core.state import ledger as ledger_module
from utxo_ledger.crypto import keypair_from_seed


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def alice():
    return keypair_from_seed(b"\x01" * 32)


@pytest.fixture
def bob():
    return keypair_from_seed(b"\x02" * 32)


@pytest.fixture
def authorities():
    return [bytes([0xa0 + i]) * 32 for i in range(3)]


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def state():
    return InMemoryState()


@pytest.fixture
def module(state, authorities, events):
    return UtxoModule(state, authorities=lambda: authorities, event_sink=events)


@pytest.fixture
def funded(module, alice):
    """Module seeded with one 10-coin and one 100-coin output for alice."""
    keys = module.genesis_init([
        TransactionOutput(value=10, pubkey=alice.public_key),
        TransactionOutput(value=100, pubkey=alice.public_key),
    ])
    return module, keys


# =============================================================================
# Genesis
# =============================================================================


class TestGenesis:
    """Tests for genesis_init."""

    def test_keys_are_output_hashes(self, module, alice):
        out = TransactionOutput(value=5, pubkey=alice.public_key)
        [key] = module.genesis_init([out])
        assert key == out.genesis_key()
        assert module.get_utxo(key) == out

    def test_duplicate_genesis_output_rejected(self, module, state, alice):
        out = TransactionOutput(value=5, pubkey=alice.public_key)
        with pytest.raises(ValueError):
            module.genesis_init([out, out])
        assert len(module.store) == 0

    def test_zero_value_rejected(self, module, alice):
        with pytest.raises(ValueError):
            module.genesis_init([TransactionOutput(value=0, pubkey=alice.public_key)])

    def test_no_events(self, module, events, alice):
        module.genesis_init([TransactionOutput(value=5, pubkey=alice.public_key)])
        assert len(events) == 0


# =============================================================================
# Spend
# =============================================================================


class TestSpend:
    """Tests for spend."""

    def test_moves_value(self, funded, alice, bob):
        module, keys = funded
        tx = create_transfer([(keys[0], alice)], [(bob.public_key, 10)])

        fee = module.spend(None, tx)

        assert fee == 0
        assert module.get_utxo(keys[0]) is None
        assert module.get_utxo(tx.output_key(0)) == TransactionOutput(value=10, pubkey=bob.public_key)
        assert module.balance_of(bob.public_key) == 10
        assert module.balance_of(alice.public_key) == 100

    def test_fee_credited(self, funded, alice, bob):
        module, keys = funded
        module.spend(None, create_transfer([(keys[1], alice)], [(bob.public_key, 60)]))
        assert module.reward_total == 40
        assert module.pool_state == RewardPoolState.ACCRUING

    def test_fees_accumulate(self, funded, alice, bob):
        module, keys = funded
        module.spend(None, create_transfer([(keys[0], alice)], [(bob.public_key, 9)]))
        module.spend(None, create_transfer([(keys[1], alice)], [(bob.public_key, 98)]))
        assert module.reward_total == 3
        assert module.total_fees_collected == 3

    def test_origin_is_ignored(self, funded, alice, bob):
        module, keys = funded
        tx = create_transfer([(keys[0], alice)], [(bob.public_key, 10)])
        module.spend("anyone at all", tx)
        assert module.get_utxo(tx.output_key(0)) is not None

    def test_event_emitted(self, funded, events, alice, bob):
        module, keys = funded
        tx = create_transfer([(keys[0], alice)], [(bob.public_key, 10)])
        module.spend(None, tx)
        assert events.events == [TransactionApplied(tx)]

    def test_outputs_spendable_in_same_block(self, funded, alice, bob):
        module, keys = funded
        tx1 = create_transfer([(keys[0], alice)], [(bob.public_key, 10)])
        module.spend(None, tx1)
        tx2 = create_transfer([(tx1.output_key(0), bob)], [(alice.public_key, 8)])
        assert module.spend(None, tx2) == 2

    def test_double_spend_is_missing_input(self, funded, alice, bob):
        module, keys = funded
        module.spend(None, create_transfer([(keys[0], alice)], [(bob.public_key, 10)]))
        with pytest.raises(MissingInput):
            module.spend(None, create_transfer([(keys[0], alice)], [(alice.public_key, 10)]))

    def test_rejection_leaves_state_unchanged(self, funded, state, events, bob):
        module, keys = funded
        before = state.snapshot()
        tx = create_transfer([(keys[0], bob)], [(bob.public_key, 1)])

        with pytest.raises(InvalidSignature):
            module.spend(None, tx)

        assert state.snapshot() == before
        assert state.depth == 0
        assert len(events) == 0

    def test_pool_overflow_rolls_back(self, funded, state, alice, bob):
        module, keys = funded
        module.store.reward_total = U128_MAX
        before = state.snapshot()

        with pytest.raises(Overflow):
            module.spend(None, create_transfer([(keys[0], alice)], [(bob.public_key, 9)]))

        assert state.snapshot() == before

    def test_index_overflow_rolls_back(self, funded, state, monkeypatch, alice, bob):
        """Index exhaustion aborts the whole transition."""
        module, keys = funded
        monkeypatch.setattr(ledger_module, "U64_MAX", 0)
        before = state.snapshot()
        tx = create_transfer([(keys[0], alice)], [(bob.public_key, 5), (alice.public_key, 5)])

        with pytest.raises(IndexOverflow):
            module.spend(None, tx)

        assert state.snapshot() == before

    def test_all_errors_are_utxo_errors(self, funded, bob):
        module, _ = funded
        tx = create_transfer([(b"\xee" * 32, bob)], [(bob.public_key, 1)])
        with pytest.raises(UtxoError):
            module.spend(None, tx)


# =============================================================================
# Reward Dispersal
# =============================================================================


class TestOnFinalize:
    """Tests for on_finalize."""

    def test_even_split(self, module, events, authorities):
        module.store.reward_total = 9
        module.on_finalize(1)

        assert module.reward_total == 0
        paid = events.of_type(EventType.REWARD_PAID)
        assert paid == [RewardPaid(a, 3) for a in authorities]
        for authority in authorities:
            out = TransactionOutput(value=3, pubkey=authority)
            assert module.get_utxo(out.reward_key(1)) == out

    def test_remainder_carried(self, module, authorities):
        module.store.reward_total = 11
        module.on_finalize(1)
        assert module.reward_total == 2
        assert sum(module.balance_of(a) for a in authorities) == 9

    def test_indivisible_pool_carried(self, module, events):
        module.store.reward_total = 2
        module.on_finalize(1)
        assert module.reward_total == 2
        assert len(module.store) == 0
        assert len(events) == 0
        assert module.pool_state == RewardPoolState.CARRY

    def test_no_authorities_carries(self, state, events):
        module = UtxoModule(state, authorities=lambda: [], event_sink=events)
        module.store.reward_total = 50
        module.on_finalize(1)
        assert module.reward_total == 50
        assert len(events) == 0
        assert module.pool_state == RewardPoolState.CARRY

    def test_empty_pool_is_noop(self, module, events):
        module.on_finalize(1)
        assert module.reward_total == 0
        assert len(events) == 0
        assert module.pool_state == RewardPoolState.EMPTY

    def test_collision_forfeits_share(self, module, events, authorities):
        taken = TransactionOutput(value=2, pubkey=authorities[1])
        module.store.insert(taken.reward_key(7), taken)
        module.store.reward_total = 6

        module.on_finalize(7)

        assert events.events == [
            RewardPaid(authorities[0], 2),
            RewardWasted(authorities[1]),
            RewardPaid(authorities[2], 2),
        ]
        # Forfeited share is not returned to the pool
        assert module.reward_total == 0
        assert module.total_rewards_wasted == 2

    def test_duplicate_authority_wastes_second_share(self, state, events):
        authority = b"\xa0" * 32
        module = UtxoModule(state, authorities=lambda: [authority, authority], event_sink=events)
        module.store.reward_total = 4
        module.on_finalize(1)
        assert events.events == [RewardPaid(authority, 2), RewardWasted(authority)]
        assert module.balance_of(authority) == 2

    def test_malformed_authority_wastes_share(self, state, events):
        good = b"\xa0" * 32
        module = UtxoModule(state, authorities=lambda: [good, b"\x01"], event_sink=events)
        module.store.reward_total = 4
        module.on_finalize(1)
        assert events.events == [RewardPaid(good, 2), RewardWasted(None)]

    def test_same_share_different_blocks_distinct(self, module, authorities):
        module.store.reward_total = 3
        module.on_finalize(1)
        module.store.reward_total = 3
        module.on_finalize(2)
        assert module.balance_of(authorities[0]) == 2

    def test_block_number_source(self, state, events, authorities):
        module = UtxoModule(
            state,
            authorities=lambda: authorities,
            event_sink=events,
            block_number=lambda: 42,
        )
        module.store.reward_total = 3
        module.on_finalize()
        out = TransactionOutput(value=1, pubkey=authorities[0])
        assert module.get_utxo(out.reward_key(42)) == out

    def test_missing_block_number_source(self, module):
        with pytest.raises(ValueError):
            module.on_finalize()


# =============================================================================
# Pool Lifecycle
# =============================================================================


class TestPoolLifecycle:
    """Empty -> Accruing -> Dispersing -> Empty | Carry"""

    def test_full_cycle(self, funded, alice, bob):
        module, keys = funded
        assert module.pool_state == RewardPoolState.EMPTY

        module.spend(None, create_transfer([(keys[0], alice)], [(bob.public_key, 7)]))
        assert module.pool_state == RewardPoolState.ACCRUING

        module.on_finalize(1)
        assert module.pool_state == RewardPoolState.EMPTY

    def test_carry_then_accrue(self, funded, alice, bob):
        module, keys = funded
        module.spend(None, create_transfer([(keys[0], alice)], [(bob.public_key, 8)]))
        module.on_finalize(1)
        assert module.pool_state == RewardPoolState.CARRY

        module.spend(None, create_transfer([(keys[1], alice)], [(bob.public_key, 99)]))
        assert module.pool_state == RewardPoolState.ACCRUING
        assert module.reward_total == 3

    def test_restored_state_starts_in_carry(self, state, events, authorities):
        first = UtxoModule(state, authorities=lambda: authorities, event_sink=events)
        first.store.reward_total = 1
        second = UtxoModule(state, authorities=lambda: authorities, event_sink=events)
        assert second.pool_state == RewardPoolState.CARRY


# =============================================================================
# Queries
# =============================================================================


class TestQueries:

    def test_utxos_for(self, funded, alice, bob):
        module, keys = funded
        assert set(module.utxos_for(alice.public_key)) == set(keys)
        assert module.utxos_for(bob.public_key) == {}

    def test_validate_for_pool(self, funded, alice, bob):
        module, keys = funded
        tx = create_transfer([(keys[1], alice)], [(bob.public_key, 95)])
        assert module.validate_for_pool(tx).priority == 5

    def test_stats(self, funded, alice, bob):
        module, keys = funded
        module.spend(None, create_transfer([(keys[1], alice)], [(bob.public_key, 94)]))
        module.on_finalize(1)

        stats = module.stats()
        assert stats["utxo_count"] == 5
        assert stats["total_value"] == 110
        assert stats["reward_total"] == 0
        assert stats["total_fees_collected"] == 6
        assert stats["total_rewards_paid"] == 6
        assert stats["pool_state"] == "empty"
