"""Core shared logic for jewel signal derivation and confluence scoring.

This package contains pure business logic with no I/O dependencies
(no database, Redis, or network access). The service layer (app/)
handles persistence, caching and transport around it.
"""
