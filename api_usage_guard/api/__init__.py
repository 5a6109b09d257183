"""
Request layer for API Usage Guard.

Transport-neutral handlers that map logical operations to status codes.
"""
