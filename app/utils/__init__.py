"""
Utilities Module
================

Helper functions and utility classes.
"""

from app.utils.helpers import datetime_from_ms, utc_now

__all__ = ["datetime_from_ms", "utc_now"]
