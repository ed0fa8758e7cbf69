"""Reconcile locally authored marketing journeys with a remote workflow engine."""

__version__ = "1.2.0"
