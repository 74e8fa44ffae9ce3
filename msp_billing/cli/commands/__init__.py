"""CLI commands for the billing engine."""
