"""Video download relay service."""
