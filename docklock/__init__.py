"""docklock - pin container image tags to digests."""

__version__ = "0.1.0"
