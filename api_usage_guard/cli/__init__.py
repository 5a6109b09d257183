"""
Command-line interface for API Usage Guard.
"""
