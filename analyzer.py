"""
Activity Series Analyzer.

Pure functions over a user's journal entries and an explicit reference
``today``. Nothing here reads the clock, touches the store or raises for
empty, duplicated or mood-less input.
"""

import math
import calendar
from datetime import date, timedelta
from typing import Optional, Dict, List, Tuple, Iterable, NamedTuple

from entries import JournalEntry

ONE_DAY = timedelta(days=1)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

MILESTONES = [
    (3, "3 Day Streak!"),
    (7, "Week Warrior!"),
    (14, "Two Weeks!"),
    (30, "Month Master!"),
]


# =============================================================================
# Result types
# =============================================================================

class StreakSummary(NamedTuple):
    current_streak: int
    longest_streak: int
    total_entries: int
    this_week: int
    this_month: int
    last_entry_date: Optional[date]


class GridDay(NamedTuple):
    date: date
    has_entry: bool
    mood_score: Optional[int]


class SparkPoint(NamedTuple):
    date: date
    mood_score: int


class WeekdayMood(NamedTuple):
    day: str
    average: float
    entry_count: int


class TagCount(NamedTuple):
    tag: str
    count: int


class Milestone(NamedTuple):
    days: int
    label: str
    achieved: bool


class NextMilestone(NamedTuple):
    days: int
    remaining: int
    progress: int


class Memory(NamedTuple):
    entry: JournalEntry
    reason: str


# =============================================================================
# Deduplication
# =============================================================================

def entries_by_day(entries: Iterable[JournalEntry]) -> Dict[date, JournalEntry]:
    """One entry per calendar day; the first one seen for a date wins."""
    days: Dict[date, JournalEntry] = {}
    for entry in entries:
        days.setdefault(entry.entry_date, entry)
    return days


def unique_days(entries: Iterable[JournalEntry]) -> List[date]:
    """Distinct entry dates, ascending."""
    return sorted({e.entry_date for e in entries})


def _dedup_sorted(entries: Iterable[JournalEntry]) -> List[JournalEntry]:
    by_day = entries_by_day(entries)
    return [by_day[d] for d in sorted(by_day)]


# =============================================================================
# Streak Calculator
# =============================================================================

def current_streak(entries: Iterable[JournalEntry], today: date) -> int:
    """
    Consecutive days with an entry, ending today or yesterday.

    A streak whose latest day is yesterday is still alive, so it isn't
    broken before the user has had a chance to write today.
    """
    days = [d for d in unique_days(entries) if d <= today]
    if not days:
        return 0

    latest = days[-1]
    if latest != today and latest != today - ONE_DAY:
        return 0

    present = set(days)
    streak = 0
    check_date = latest
    while check_date in present:
        streak += 1
        check_date -= ONE_DAY
    return streak


def longest_streak(entries: Iterable[JournalEntry]) -> int:
    """Longest run of consecutive days over the whole history."""
    days = unique_days(entries)
    if not days:
        return 0

    longest = 1
    run = 1
    for prev, curr in zip(days, days[1:]):
        if curr - prev == ONE_DAY:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
    return longest


def streak_summary(entries: Iterable[JournalEntry], today: date) -> StreakSummary:
    """Streaks plus the engagement counts shown next to them."""
    entries = list(entries)
    days = unique_days(entries)
    current = current_streak(entries, today)

    week_start = today - timedelta(days=6)
    month_start = today.replace(day=1)

    return StreakSummary(
        current_streak=current,
        longest_streak=max(longest_streak(entries), current),
        total_entries=len(days),
        this_week=sum(1 for d in days if week_start <= d <= today),
        this_month=sum(1 for d in days if month_start <= d <= today),
        last_entry_date=days[-1] if days else None,
    )


def encouragement_message(summary: StreakSummary) -> str:
    """Personalized encouragement based on streak."""
    streak = summary.current_streak

    if streak == 0:
        if summary.total_entries == 0:
            return "Start today. Every collection of good moments begins with one."
        return "Welcome back! What's one good thing from today?"
    elif streak == 1:
        return "Great start! One good thing a day builds a lasting habit."
    elif streak < 7:
        return f"{streak} days strong! You're noticing more of the good."
    elif streak < 30:
        return f"Amazing {streak}-day streak! Gratitude is becoming second nature."
    elif streak < 100:
        return f"Incredible {streak} days! Look how much good you've collected."
    else:
        return f"Legendary {streak}-day streak! You've made gratitude a way of life."


# =============================================================================
# Milestones
# =============================================================================

def milestones(streak: int) -> List[Milestone]:
    return [Milestone(days, label, streak >= days) for days, label in MILESTONES]


def next_milestone(streak: int) -> Optional[NextMilestone]:
    for days, _ in MILESTONES:
        if streak < days:
            return NextMilestone(
                days=days,
                remaining=days - streak,
                progress=round(streak / days * 100),
            )
    return None


def reached_milestone(streak: int) -> Optional[Milestone]:
    """The milestone hit exactly at this streak length, if any."""
    for days, label in MILESTONES:
        if streak == days:
            return Milestone(days, label, True)
    return None


# =============================================================================
# Activity Grid / Heatmap
# =============================================================================

def calendar_grid(entries: Iterable[JournalEntry], start: date, end: date) -> List[GridDay]:
    """Left join of the inclusive date axis start..end onto the entries."""
    if end < start:
        return []

    by_day = entries_by_day(entries)
    grid = []
    day = start
    while day <= end:
        entry = by_day.get(day)
        grid.append(GridDay(
            date=day,
            has_entry=entry is not None,
            mood_score=entry.mood_score if entry else None,
        ))
        day += ONE_DAY
    return grid


def activity_grid(entries: Iterable[JournalEntry], today: date, days: int) -> List[GridDay]:
    """Exactly ``days`` consecutive days ending today, oldest first."""
    if days <= 0:
        return []
    return calendar_grid(entries, today - timedelta(days=days - 1), today)


def heatmap_range(today: date, months_back: int = 2) -> Tuple[date, date]:
    """First day of the month ``months_back`` ago through the end of this month."""
    year, month = today.year, today.month - months_back
    while month < 1:
        month += 12
        year -= 1
    start = date(year, month, 1)
    end = today.replace(day=calendar.monthrange(today.year, today.month)[1])
    return start, end


def mood_sparkline(entries: Iterable[JournalEntry], today: date,
                   days: int = 30, cap: int = 30) -> List[SparkPoint]:
    """Tracked moods in the trailing window, oldest first, at most ``cap`` points."""
    points = [
        SparkPoint(e.entry_date, e.mood_score)
        for e in entries_in_window(entries, today, days)
        if e.mood_score is not None
    ]
    if cap <= 0:
        return []
    return points[-cap:]


# =============================================================================
# Aggregate Statistics
# =============================================================================

def entries_in_range(entries: Iterable[JournalEntry], start: date, end: date) -> List[JournalEntry]:
    """Deduplicated entries with start <= date <= end, ascending."""
    return [e for e in _dedup_sorted(entries) if start <= e.entry_date <= end]


def entries_in_window(entries: Iterable[JournalEntry], today: date, days: int) -> List[JournalEntry]:
    """Deduplicated entries from the last ``days`` days including today."""
    if days <= 0:
        return []
    return entries_in_range(entries, today - timedelta(days=days - 1), today)


def average_mood(entries: Iterable[JournalEntry]) -> Optional[float]:
    """Mean tracked mood, or None when nothing was tracked."""
    moods = [e.mood_score for e in _dedup_sorted(entries) if e.mood_score is not None]
    if not moods:
        return None
    return round(sum(moods) / len(moods), 1)


def weekday_affinity(entries: Iterable[JournalEntry]) -> Optional[WeekdayMood]:
    """
    Weekday with the highest average tracked mood.

    Ties go to the weekday reached first walking the entries by ascending
    date.
    """
    groups: Dict[str, List[int]] = {}
    for entry in _dedup_sorted(entries):
        if entry.mood_score is None:
            continue
        name = DAY_NAMES[entry.entry_date.weekday()]
        groups.setdefault(name, []).append(entry.mood_score)

    best = None
    for name, moods in groups.items():
        avg = sum(moods) / len(moods)
        if best is None or avg > best.average:
            best = WeekdayMood(day=name, average=avg, entry_count=len(moods))

    if best is None:
        return None
    return best._replace(average=round(best.average, 2))


def weekday_breakdown(entries: Iterable[JournalEntry]) -> List[Dict]:
    """Entry count and average tracked mood for every weekday, Monday first."""
    counts = {name: 0 for name in DAY_NAMES}
    moods: Dict[str, List[int]] = {name: [] for name in DAY_NAMES}

    for entry in _dedup_sorted(entries):
        name = DAY_NAMES[entry.entry_date.weekday()]
        counts[name] += 1
        if entry.mood_score is not None:
            moods[name].append(entry.mood_score)

    return [
        {
            "day": name,
            "count": counts[name],
            "avg_mood": round(sum(moods[name]) / len(moods[name]), 2) if moods[name] else None,
        }
        for name in DAY_NAMES
    ]


def tag_frequency(entries: Iterable[JournalEntry], top_k: Optional[int] = 5) -> List[TagCount]:
    """Most used tags, count descending; ties keep first-appearance order."""
    counts: Dict[str, int] = {}
    for entry in _dedup_sorted(entries):
        for tag in entry.tags:
            counts[tag] = counts.get(tag, 0) + 1

    ranked = sorted(counts.items(), key=lambda x: x[1], reverse=True)
    if top_k is not None:
        ranked = ranked[:max(top_k, 0)]
    return [TagCount(tag, count) for tag, count in ranked]


def mood_trend(entries: Iterable[JournalEntry]) -> str:
    """Compare the newer half of tracked moods against the older half."""
    moods = [e.mood_score for e in reversed(_dedup_sorted(entries)) if e.mood_score is not None]
    if len(moods) < 3:
        return "stable"

    half = math.ceil(len(moods) / 2)
    recent, older = moods[:half], moods[half:]
    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)

    if recent_avg > older_avg + 0.5:
        return "improving"
    if recent_avg < older_avg - 0.5:
        return "declining"
    return "stable"


def positivity_label(avg: Optional[float]) -> str:
    if avg is None:
        return "Not tracked"
    if avg >= 4:
        return "High"
    if avg >= 3:
        return "Good"
    return "Growing"


# =============================================================================
# Memory Resurfacing
# =============================================================================

def _years_ago(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        # Feb 29 in a non-leap year
        return today.replace(year=today.year - years, day=28)


def _closest(candidates: List[JournalEntry], target: date, tolerance: int) -> Optional[JournalEntry]:
    near = [e for e in candidates if abs((e.entry_date - target).days) <= tolerance]
    if not near:
        return None
    return min(near, key=lambda e: (abs((e.entry_date - target).days), e.entry_date))


def resurface_memories(entries: Iterable[JournalEntry], today: date) -> List[Memory]:
    """Pick up to four distinct past entries worth showing again."""
    past = [e for e in _dedup_sorted(entries) if e.entry_date <= today]
    memories: List[Memory] = []

    def available():
        taken = {m.entry.entry_date for m in memories}
        return [e for e in past if e.entry_date not in taken]

    year_ago = _closest(available(), _years_ago(today, 1), 3)
    if year_ago:
        memories.append(Memory(year_ago, "One year ago today"))

    month_ago = _closest(available(), today - timedelta(days=30), 2)
    if month_ago:
        memories.append(Memory(month_ago, "30 days ago"))

    brightest = [e for e in available() if e.mood_score == 5]
    if brightest:
        memories.append(Memory(brightest[-1], "One of your brightest moments"))

    older = [e for e in available() if (today - e.entry_date).days > 60]
    if older:
        memories.append(Memory(older[0], "A moment worth remembering"))

    return memories
