"""Calendar Tools — Detect, filter and move conflicting events

Components:
    conflicts.py: Union-find grouping of overlapping commitments
    conflict_filter.py: User-authored "never a real conflict" rules
    availability.py: Free/busy slot search for rescheduling
    holidays.py: Workday and public-holiday checks
"""
