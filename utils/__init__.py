"""
Utility modules for the watcher application.
"""

from .retry import retry
from .time_utils import utc_now, now_iso, to_iso, parse_iso, is_within

__all__ = ['retry', 'utc_now', 'now_iso', 'to_iso', 'parse_iso', 'is_within']
