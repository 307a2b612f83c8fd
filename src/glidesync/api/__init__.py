"""REST API for glidesync."""
