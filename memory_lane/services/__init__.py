"""Domain services: catalog, reconciliation, caching and settings."""
