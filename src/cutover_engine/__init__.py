"""Cutover execution engine: plans, health checks, DNS changes and rollback."""
