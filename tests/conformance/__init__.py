"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the collateral engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. solvency.py - Every applied operation leaves its actor healthy
2. atomicity.py - Rejected operations change nothing
3. round_trip.py - Deposit then redeem restores balances
4. liquidation_improvement.py - Applied liquidations strictly improve the target
5. conservation.py - Synthetic supply equals total debt, custody equals deposits

These tests use hypothesis for property-based testing.
"""
