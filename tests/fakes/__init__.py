"""Test doubles for registry client tests."""
