"""Policies — Decide how important a meeting is and what to do about a conflict

Components:
    priority.py: Tiered rule matching (critical > high > medium > low)
    resolver.py: Priority-difference rules to resolution proposals
"""
