"""glidesync - keeps Glide tables and relational tables in step."""

__version__ = "0.1.0"
