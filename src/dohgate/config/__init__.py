"""Configuration parsing for dohgate."""
