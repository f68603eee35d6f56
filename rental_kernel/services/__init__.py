"""Kernel services: flush-only base, audit trail, activity logger."""
