"""Upstream DNS transports (UDP, TCP)."""
