"""
SM-2 style review scheduling for generated lessons.

Schedules live in a subject's data under ``reviewSchedules``, keyed by
``"{topic}-{lessonIndex}"``. All timestamps are epoch milliseconds.
"""
import math
import time
from typing import Any, Dict, List, Optional

DAY_MS = 24 * 60 * 60 * 1000
INITIAL_EASE = 2.5
MIN_EASE = 1.3


def now_ms() -> int:
    return int(time.time() * 1000)


def schedule_key(topic_name: str, lesson_index: int) -> str:
    return f"{topic_name}-{lesson_index}"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def next_ease(ease: float, quality: int) -> float:
    miss = 5 - quality
    return max(MIN_EASE, ease + (0.1 - miss * (0.08 + miss * 0.02)))


def mark_lesson_reviewed(
    data: Dict[str, Any],
    topic_name: str,
    lesson_index: int,
    quality: int,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Record a review of one lesson and return its updated schedule.

    ``data`` is modified in place. Quality runs from 0 (forgot) to 5 (perfect).
    """
    if isinstance(quality, bool) or not isinstance(quality, int) or not 0 <= quality <= 5:
        raise ValueError("quality must be an integer from 0 to 5")

    now = now_ms() if now is None else now
    schedules = data.get("reviewSchedules")
    if not isinstance(schedules, dict):
        schedules = {}
        data["reviewSchedules"] = schedules

    key = schedule_key(topic_name, lesson_index)
    existing = schedules.get(key)

    if not existing:
        interval = 1 if quality >= 3 else 0.5
        schedule = {
            "topicName": topic_name,
            "lessonIndex": lesson_index,
            "lastReviewed": now,
            "nextReview": now + int(interval * DAY_MS),
            "interval": interval,
            "ease": INITIAL_EASE,
            "reviews": 1,
        }
    else:
        ease = next_ease(float(existing.get("ease", INITIAL_EASE)), quality)
        reviews = int(existing.get("reviews", 0))
        if quality < 3:
            interval = 1
        elif reviews == 1:
            interval = 3
        else:
            interval = _round_half_up(float(existing.get("interval", 1)) * ease)
        schedule = {
            **existing,
            "lastReviewed": now,
            "nextReview": now + int(interval * DAY_MS),
            "interval": interval,
            "ease": ease,
            "reviews": reviews + 1,
        }

    schedules[key] = schedule
    return schedule


def _schedules(data: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    schedules = (data or {}).get("reviewSchedules")
    if not isinstance(schedules, dict):
        return []
    return [s for s in schedules.values() if isinstance(s, dict) and "nextReview" in s]


def get_lessons_due_for_review(data: Optional[Dict[str, Any]], now: Optional[int] = None) -> List[Dict[str, Any]]:
    """Schedules due at or before ``now``, oldest first."""
    now = now_ms() if now is None else now
    due = [s for s in _schedules(data) if s["nextReview"] <= now]
    return sorted(due, key=lambda s: s["nextReview"])


def get_upcoming_reviews(
    data: Optional[Dict[str, Any]], days: float = 7, now: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Schedules falling due after ``now`` but within ``days``."""
    now = now_ms() if now is None else now
    horizon = now + days * DAY_MS
    upcoming = [s for s in _schedules(data) if now < s["nextReview"] <= horizon]
    return sorted(upcoming, key=lambda s: s["nextReview"])
