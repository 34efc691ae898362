"""
Tool: Conflict Detector
Purpose: Partition a window's events into groups of overlapping commitments

Only real commitments can conflict. Declined events, all-day events,
cancelled events and events shown as "free" are dropped before grouping.
Tentative events stay in.

Grouping uses half-open intervals [start, end): an event ending at 10:00
does not conflict with one starting at 10:00. Overlapping pairs are merged
with a disjoint-set structure so chains (A overlaps B, B overlaps C, A does
not overlap C) end up in one group.

Usage:
    from calendar_agent.calendar.conflicts import detect_conflicts

    groups = detect_conflicts(events)
"""

from calendar_agent.models import ConflictGroup, Event, ResponseStatus, ShowAs


DECLINED_PREFIX = "Declined:"


class DisjointSet:
    """Union-find over indices 0..n-1 with path compression and union by size."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.size = [1] * size

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return
        if self.size[root_a] < self.size[root_b]:
            root_a, root_b = root_b, root_a
        self.parent[root_b] = root_a
        self.size[root_a] += self.size[root_b]


def is_active_commitment(event: Event) -> bool:
    """True when the event blocks the user's time."""
    if event.is_all_day or event.is_cancelled:
        return False
    if event.show_as == ShowAs.FREE:
        return False
    if event.response_status == ResponseStatus.DECLINED:
        return False
    if event.subject.startswith(DECLINED_PREFIX):
        return False
    # Zero-duration items are feed artifacts, not busy time
    return not event.is_zero_duration


def detect_conflicts(events: list[Event]) -> list[ConflictGroup]:
    """
    Group mutually or transitively overlapping events.

    Args:
        events: Events for the window, in any order

    Returns:
        ConflictGroups ordered by start time; every event appears in at
        most one group
    """
    active = sorted(
        (e for e in events if is_active_commitment(e)),
        key=lambda e: (e.start, e.end, e.id),
    )
    if len(active) < 2:
        return []

    sets = DisjointSet(len(active))
    for i in range(len(active)):
        for j in range(i + 1, len(active)):
            # Sorted by start: once j starts at or after i ends, no later j overlaps i
            if active[j].start >= active[i].end:
                break
            if active[i].overlaps(active[j]):
                sets.union(i, j)

    members: dict[int, list[Event]] = {}
    for i, event in enumerate(active):
        members.setdefault(sets.find(i), []).append(event)

    groups = [ConflictGroup(events=tuple(group)) for group in members.values() if len(group) > 1]
    groups.sort(key=lambda g: (g.start_time, g.end_time))
    return groups


def format_conflict_summary(group: ConflictGroup) -> str:
    """
    One line per event with organizer, attendee count and response status.

    Args:
        group: Conflict group to summarize

    Returns:
        Multi-line summary string
    """
    lines = []
    for event in group.events:
        organizer = event.organizer or "Unknown"
        lines.append(
            f"• {event.subject} (by {organizer}, {event.attendee_count} attendees, "
            f"status: {event.response_status.value})"
        )
    return "\n".join(lines)
