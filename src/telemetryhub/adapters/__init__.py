"""Adapters connecting the core ports to concrete backends."""
