"""HTTP API for WorldVibe."""
