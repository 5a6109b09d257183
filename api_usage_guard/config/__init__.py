"""
Configuration for API Usage Guard.
"""
