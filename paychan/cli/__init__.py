"""Command-line interface for paychan."""
