"""Test suite for pmdeposit.

This package contains:
- Unit tests for the deposit kernels (domain wrap, weights, atlas packing)
- End-to-end deposit pass tests (conservation, order independence, scenarios)
"""
