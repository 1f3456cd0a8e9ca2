"""
Test support utilities for omnistore tests.

Helpers that are not fixtures: in-memory stand-ins for remote services.
"""
