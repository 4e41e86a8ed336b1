"""Utility helpers for tessera core."""
