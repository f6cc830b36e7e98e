"""Jewel confluence service."""
