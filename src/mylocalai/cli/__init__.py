"""Command line interface for mylocalai."""
