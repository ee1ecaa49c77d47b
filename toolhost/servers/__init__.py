"""Runnable example tool servers."""
