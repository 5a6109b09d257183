"""
Core modules for API Usage Guard.

This package contains the usage ledger, alert evaluation, integration
registry, credential handling and token lifecycle.
"""
