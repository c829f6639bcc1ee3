"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the simulator.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Calls move value, never create or destroy it
2. atomicity.py - A failed call leaves no trace on the ledger
3. determinism.py - Reproducible behavior

These tests use hypothesis for property-based testing over random call
sequences against a mixed world of banks, attackers and plain accounts
(see worlds.py).
"""
