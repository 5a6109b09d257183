"""
Storage layer for API Usage Guard.

Store interfaces plus in-memory and SQLite implementations.
"""
