"""Command line interface for planview."""
