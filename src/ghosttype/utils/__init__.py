"""Utility helpers shared across GhostType."""
