"""Microsoft 365 tenant administration toolkit.

This package exposes helpers for credential loading, Graph authentication,
directory operations, batch execution, and CSV reporting.
"""

__version__ = "0.1.0"
