"""HTTP surface of the DoH gateway."""
