"""Lease Lifecycle Manager and lease Balance Calculator."""
