"""
End-to-end ledger scenarios.

Each scenario drives a UtxoModule through genesis, spend and finalize with
real sr25519 keys and checks storage and events afterwards.
"""

import pytest

from utxo_ledger.core.errors import DuplicateInput, MissingInput, NegativeFee
from utxo_ledger.core.events import EventLog, RewardPaid, TransactionApplied
from utxo_ledger.core.state import (
    InMemoryState,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UtxoModule,
    create_transfer,
)
from utxo_ledger.crypto import blake2_256, keypair_from_seed
from utxo_ledger.core.codec import encode_u64


@pytest.fixture
def a():
    return keypair_from_seed(b"A" * 32)


@pytest.fixture
def b():
    return keypair_from_seed(b"B" * 32)


@pytest.fixture
def authorities():
    return [keypair_from_seed(bytes([c]) * 32).public_key for c in b"XYZ"]


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def state():
    return InMemoryState()


@pytest.fixture
def module(state, authorities, events):
    return UtxoModule(state, authorities=lambda: authorities, event_sink=events)


def test_single_valid_spend(module, events, a, b):
    genesis = TransactionOutput(value=100, pubkey=a.public_key)
    [k0] = module.genesis_init([genesis])
    assert k0 == blake2_256(genesis.to_bytes())

    tx = Transaction(
        inputs=[TransactionInput(outpoint=k0)],
        outputs=[TransactionOutput(value=100, pubkey=b.public_key)],
    ).sign_input(0, a)

    module.spend(None, tx)

    k1 = blake2_256(tx.to_bytes() + encode_u64(0))
    assert module.get_utxo(k0) is None
    assert module.get_utxo(k1) == TransactionOutput(value=100, pubkey=b.public_key)
    assert len(module.store) == 1
    assert module.reward_total == 0
    assert events.events == [TransactionApplied(tx)]


def test_missing_input(module, state, events, a, b):
    module.genesis_init([TransactionOutput(value=100, pubkey=a.public_key)])
    before = state.snapshot()

    tx = create_transfer([(b"\x42" * 32, a)], [(b.public_key, 1)])
    with pytest.raises(MissingInput):
        module.spend(None, tx)

    assert state.snapshot() == before
    assert len(events) == 0


def test_fee_accrual_and_dispersal(module, events, a, b, authorities):
    [k0] = module.genesis_init([TransactionOutput(value=10, pubkey=a.public_key)])

    assert module.spend(None, create_transfer([(k0, a)], [(b.public_key, 7)])) == 3
    assert module.reward_total == 3

    module.on_finalize(1)

    assert module.reward_total == 0
    assert events.events[1:] == [RewardPaid(x, 1) for x in authorities]
    for x in authorities:
        reward = TransactionOutput(value=1, pubkey=x)
        assert module.get_utxo(reward.reward_key(1)) == reward
    assert module.store.total_value() == 10


def test_indivisible_pool(module, state, events):
    module.store.reward_total = 2
    before = state.snapshot()

    module.on_finalize(1)

    assert module.reward_total == 2
    assert state.snapshot() == before
    assert len(events) == 0


def test_duplicate_input_rejection(module, state, a, b):
    [k0] = module.genesis_init([TransactionOutput(value=100, pubkey=a.public_key)])
    before = state.snapshot()

    tx = create_transfer([(k0, a), (k0, a)], [(b.public_key, 100)])
    with pytest.raises(DuplicateInput):
        module.spend(None, tx)

    assert state.snapshot() == before


def test_conservation_violation(module, state, a, b):
    [k0] = module.genesis_init([TransactionOutput(value=5, pubkey=a.public_key)])
    before = state.snapshot()

    tx = create_transfer([(k0, a)], [(b.public_key, 6)])
    with pytest.raises(NegativeFee):
        module.spend(None, tx)

    assert state.snapshot() == before
