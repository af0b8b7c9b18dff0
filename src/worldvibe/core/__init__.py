"""Core configuration for WorldVibe."""
