"""HTTP API for the PineScript engine."""
