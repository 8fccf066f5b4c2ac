"""authsync: reconcile declared auth methods against a remote auth service."""

__version__ = "0.1.0"
