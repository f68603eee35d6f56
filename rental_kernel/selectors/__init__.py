"""Read-only selectors over kernel-owned tables."""
