"""
API Usage Guard.

Tracks usage and cost of registered API integrations, raises threshold
alerts, and manages token-authenticated user accounts.
"""

__version__ = "0.1.0"
