"""Core infrastructure: configuration, logging and monitoring."""
