"""Snack matchmaking backend."""
