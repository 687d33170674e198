"""Shared per-pixel helpers for the mapping effects."""
