"""Verify that a lockfile is up to date."""
