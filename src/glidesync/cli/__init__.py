"""Command-line interface for glidesync."""
