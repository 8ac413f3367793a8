"""HTTP API for FLEXR analytics."""
