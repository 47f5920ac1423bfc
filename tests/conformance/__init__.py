"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the alignment vault.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. test_ratios.py - Frozen ownership ratios of every conversion
2. test_watermarks.py - Claims never exceed entitlements; watermarks only rise
3. test_idempotency.py - Repeated claims and harvests pay nothing new
4. test_isolation.py - Fees of one conversion never reach another's benefactors
5. test_atomicity.py - Failed entry points leave no trace
6. test_reward_isolation.py - Reward failures never undo a conversion
7. test_conservation.py - Double entry and vault solvency

These tests use hypothesis for property-based testing.
"""
