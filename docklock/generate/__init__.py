"""Lockfile generation: collect, parse, resolve digests and assemble."""
