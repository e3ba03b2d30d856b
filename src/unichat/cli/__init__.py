"""Command-line interface for Unichat."""
