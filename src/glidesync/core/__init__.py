"""Core sync engine: models, repositories, services and endpoints."""
