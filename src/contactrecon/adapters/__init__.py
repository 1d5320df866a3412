"""Adapters binding the reconciliation domain to concrete infrastructure."""
