"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the OPIC ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Cash is neither created nor destroyed by distribution
2. estimate.py - The two estimate branches meet at the interval boundary
3. roundtrip.py - Encoding then decoding reproduces every lookup exactly
4. durability.py - Load is all-or-nothing, save is atomic
5. concurrency.py - Conservation holds under concurrent distributors

These tests use hypothesis for property-based testing.
"""
