"""dockside: container log/shell relays and compose service discovery."""

__version__ = "0.1.0"
