"""Persisted row shapes."""
