"""API layer — read-only status interface."""
