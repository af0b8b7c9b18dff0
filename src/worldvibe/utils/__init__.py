"""Utility helpers for WorldVibe."""
