"""Command-line interface for skilltrust."""
