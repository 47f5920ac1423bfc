"""
Watermark Conformance Tests

INVARIANT: No fee is ever paid twice, and claiming late loses nothing.

    ∀ benefactor b, record R, at every point in time:
        paid(b, R) = share(b) * accumulated(R) // total(R)   right after a claim
        paid(b, R) never decreases
        Σ_b paid(b, R) <= accumulated(R)

Whatever the interleaving of fee recordings and claims, a benefactor's
cumulative payout from a record equals their entitlement at the time of
their last claim.
"""

from datetime import datetime
from hypothesis import given, settings
from hypothesis import strategies as st

from alignment_vault import ConversionRecordStore, FeeAccrualEngine, compute_entitlement
from tests.world import build_world, E18


T0 = datetime(2025, 1, 1)
NAMES = ("alice", "bob", "carol")

share_tables = st.lists(
    st.tuples(st.sampled_from(NAMES), st.integers(min_value=1, max_value=10**20)),
    min_size=1, max_size=3, unique_by=lambda entry: entry[0],
)

actions = st.lists(
    st.one_of(
        st.tuples(st.just("fees"), st.integers(min_value=0, max_value=10**21)),
        st.tuples(st.just("claim"), st.sampled_from(NAMES)),
    ),
    min_size=1, max_size=25,
)


def _store_with(shares_by_record):
    store = ConversionRecordStore()
    for shares in shares_by_record:
        store.append(T0, tuple(shares), sum(a for _, a in shares), 1, -60, 60)
    return store


class TestWatermarkProperties:
    """Property-based tests over the pure bookkeeping layer."""

    @given(share_tables, actions)
    @settings(max_examples=200, deadline=None)
    def test_cumulative_payout_equals_entitlement(self, shares, steps):
        store = _store_with([shares])
        engine = FeeAccrualEngine(store)
        record = store.get(0)
        paid = {name: 0 for name in NAMES}

        for kind, value in steps:
            if kind == "fees":
                engine.record_accumulated_fees(0, value)
                continue
            computation = engine.compute_claim(value)
            engine.apply_claim(computation)
            paid[value] += computation.total_base
            account = store.account(0)
            assert paid[value] == compute_entitlement(
                record.share_of(value), record.total_converted, account.accumulated_fees
            )

        account = store.account(0)
        assert sum(paid.values()) == account.claimed
        assert account.claimed <= account.accumulated_fees

    @given(share_tables, st.lists(st.integers(min_value=0, max_value=10**21), min_size=1, max_size=10))
    @settings(max_examples=100, deadline=None)
    def test_claim_timing_does_not_matter(self, shares, fee_batches):
        eager = FeeAccrualEngine(_store_with([shares]))
        lazy = FeeAccrualEngine(_store_with([shares]))
        eager_paid = {name: 0 for name in NAMES}

        for amount in fee_batches:
            eager.record_accumulated_fees(0, amount)
            lazy.record_accumulated_fees(0, amount)
            for name in NAMES:
                computation = eager.compute_claim(name)
                eager.apply_claim(computation)
                eager_paid[name] += computation.total_base

        for name in NAMES:
            assert lazy.compute_claim(name).total_base == eager_paid[name]

    @given(share_tables, st.integers(min_value=0, max_value=10**21))
    @settings(max_examples=100, deadline=None)
    def test_watermark_never_decreases(self, shares, amount):
        store = _store_with([shares])
        engine = FeeAccrualEngine(store)
        engine.record_accumulated_fees(0, amount)
        name = shares[0][0]
        engine.apply_claim(engine.compute_claim(name))
        first = store.watermark(name, 0)
        engine.apply_claim(engine.compute_claim(name))
        assert store.watermark(name, 0) == first


class TestVaultWatermarks:
    """The same invariant through the vault entry points."""

    @given(st.lists(st.integers(min_value=0, max_value=10**6), min_size=1, max_size=6), st.data())
    @settings(max_examples=10, deadline=None)
    def test_interleaved_claims(self, deposits, data):
        world = build_world()
        vault = world.vault
        vault.receive_contribution("alice", 10 * E18)
        vault.receive_contribution("bob", 5 * E18)
        vault.convert_and_add_liquidity(caller="keeper")

        paid = {"alice": 0, "bob": 0}
        for amount in deposits:
            vault.record_accumulated_fees("dao", 0, amount)
            for name in data.draw(st.lists(st.sampled_from(("alice", "bob")), max_size=3)):
                paid[name] += vault.claim_benefactor_fees(name).base_fees

        total = sum(deposits)
        for name in paid:
            paid[name] += vault.claim_benefactor_fees(name).base_fees
        assert paid == {"alice": total * 2 // 3, "bob": total // 3}
        assert vault.watermark("alice", 0).paid == total * 2 // 3
