"""
Idempotency Conformance Tests

INVARIANT: Repeating an operation with nothing new to act on changes nothing.

    claim(b); claim(b)     ⟹ second claim pays 0
    harvest(); harvest()   ⟹ second harvest collects (0, 0)
    pause(); pause()       ⟹ one PAUSED event
    flush(); flush()       ⟹ second flush forwards 0

This guarantees safe retries by keepers and benefactors.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from tests.world import build_world, swap, state_fingerprint, E18


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(st.integers(min_value=0, max_value=10**20), st.integers(min_value=2, max_value=4))
    @settings(max_examples=10, deadline=None)
    def test_repeated_claims_pay_once(self, fees, repeats):
        world = build_world()
        vault = world.vault
        vault.receive_contribution("alice", 10 * E18)
        vault.receive_contribution("bob", 5 * E18)
        vault.convert_and_add_liquidity(caller="keeper")
        vault.record_accumulated_fees("dao", 0, fees)

        first = vault.claim_benefactor_fees("alice")
        after_first = state_fingerprint(world)
        for _ in range(repeats - 1):
            assert vault.claim_benefactor_fees("alice").total_paid == 0
        assert first.base_fees == fees * 2 // 3
        assert state_fingerprint(world) == after_first

    @given(st.integers(min_value=E18, max_value=20 * E18))
    @settings(max_examples=8, deadline=None)
    def test_repeated_harvests_collect_once(self, volume):
        world = build_world()
        vault = world.vault
        vault.receive_contribution("alice", 10 * E18)
        vault.convert_and_add_liquidity(caller="keeper")
        swap(world.manager, "trader", world.key, True, volume)

        base, _ = vault.harvest_fees()
        assert base > 0
        after_first = state_fingerprint(world)
        assert vault.harvest_fees() == (0, 0)
        assert state_fingerprint(world) == after_first


class TestIdempotencyExamples:

    def test_pause_twice(self, vault):
        vault.pause("dao")
        after_first = vault.events
        vault.pause("dao")
        assert vault.events == after_first

    def test_claim_after_claim_with_target_fees(self, converted_world):
        vault = converted_world.vault
        vault.record_accumulated_fees("dao", 0, 0, target_amount=3 * E18)
        assert vault.claim_benefactor_fees("bob").target_fees == E18
        again = vault.claim_benefactor_fees("bob")
        assert (again.target_fees, again.base_from_target) == (0, 0)

    def test_harvest_without_position(self, world):
        before = state_fingerprint(world)
        assert world.vault.harvest_fees() == (0, 0)
        assert state_fingerprint(world) == before
