"""Command-line tools for Sparks."""
