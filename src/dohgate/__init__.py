"""dohgate: a DNS-over-HTTPS (RFC 8484) gateway."""

__version__ = "0.1.0"
