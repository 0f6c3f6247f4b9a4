"""
ExactPilot — a command-line client for the Exact Online REST API.

Authenticate once, then export divisions and bulk transaction lines.
"""

__version__ = "0.1.0"
__all__ = ["ExactPilot"]

from exactpilot.pilot import ExactPilot  # noqa: E402
