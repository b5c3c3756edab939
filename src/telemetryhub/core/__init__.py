"""Core domain: models, ports, errors, configuration and metric registry."""
