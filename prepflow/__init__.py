"""
prepflow - timed interview-practice and assessment core

Generates unique question sets, runs per-question and per-session timers,
keeps answers across free navigation, and scores finished sessions with a
language model or a deterministic fallback.
"""

__version__ = "0.1.0"
__author__ = "prepflow Team"
