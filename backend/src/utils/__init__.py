"""
Utility modules for the scheduling backend.

This package contains shared utility functions and helpers used across
the application, including time and datetime utilities and database
query helpers.
"""

from utils.time_utils import intervals_overlap, normalize_time, time_to_minutes

__all__ = ['intervals_overlap', 'normalize_time', 'time_to_minutes']
