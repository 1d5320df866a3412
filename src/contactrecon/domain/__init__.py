"""Domain layer for contact reconciliation."""
