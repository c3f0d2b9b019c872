"""
modules/planning/time_utils.py
-------------------------------
"HH:MM" clock helpers shared by the distributor, orderer and synthesizer.
Output clock strings are not wrapped at midnight ("24:30" stays "24:30").
"""

from __future__ import annotations


def time_to_minutes(hhmm: str) -> int:
    """Convert "HH:MM" to integer minutes-from-midnight."""
    hours, minutes = hhmm.strip().split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(mins: int) -> str:
    """Convert minutes-from-midnight to "HH:MM"."""
    mins = max(0, int(round(mins)))
    return f"{mins // 60:02d}:{mins % 60:02d}"


def is_valid_time(hhmm: str) -> bool:
    try:
        hours, minutes = hhmm.split(":")
        return 0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59 and len(minutes) == 2
    except (AttributeError, ValueError):
        return False
