"""Rewrite files with lockfile digests."""
