"""
Attainment Service - read-only projections over attempts and question records.

Every function here takes rows that were already loaded (plain dicts, see
Attempt.as_row / QuestionRecord.as_row) and returns JSON-ready structures,
so the routes own the queries and permission checks and this module owns
the arithmetic:

- to_pct: tolerant percent normaliser for attempt rows of any vintage
- monthly_series / class_year_series: mean percent per calendar month
- pupil_series: one point per attempt
- table_heatmap / accuracy_band / table_breakdown: per-times-table accuracy
- class_overview: pupils x last six months grid
- improvers_and_concerns: window-over-window comparison per pupil

Averages and percentages are rounded half-up so 62.5 reports as 63.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Mapping, Optional

from timestables.config import (
    MIN_TABLE, MAX_TABLE, CONCERN_THRESHOLD, INSIGHT_LIST_SIZE,
    INSIGHT_MIN_ATTEMPTS, DEFAULT_WINDOW_DAYS, MIN_WINDOW_DAYS, MAX_WINDOW_DAYS
)

PERCENT_KEYS = ("score_percent", "scorePercent", "percent", "percentage", "score_pct")
CORRECT_KEYS = ("correct", "correct_count", "correctCount", "num_correct", "right")
TOTAL_KEYS = ("total", "total_count", "totalCount", "num_questions", "question_count")
SCORE_KEYS = ("score", "result", "value")
DATE_KEYS = ("created_at", "taken_at", "date")

OVERVIEW_MONTHS = 6

# (lower bound, key, label), checked top to bottom
ACCURACY_BANDS = (
    (90, "strong", "Strong (≥90%)"),
    (75, "secure", "Secure (75–89%)"),
    (50, "developing", "Developing (50–74%)"),
    (25, "weak", "Weak (25–49%)"),
    (0, "very_weak", "Very weak (<25%)"),
)
NO_DATA_BAND = ("no_data", "No data yet")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def _first_present(row: Mapping, keys) -> Optional[object]:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _clamp_pct(value: float) -> int:
    return max(0, min(100, round_half_up(value)))


def to_pct(row: Mapping) -> Optional[int]:
    """
    Derive a 0-100 percent from an attempt row.

    Priority:
    1. An explicit percent field
    2. correct / total, when total > 0
    3. A raw score: <= 1 is a fraction, anything else is already a percent
    Returns None when none of these yields a number.
    """
    pct = _first_present(row, PERCENT_KEYS)
    if _is_number(pct):
        return _clamp_pct(pct)

    correct = _first_present(row, CORRECT_KEYS)
    total = _first_present(row, TOTAL_KEYS)
    if _is_number(correct) and _is_number(total) and total > 0:
        return round_half_up(correct / total * 100)

    score = _first_present(row, SCORE_KEYS)
    if _is_number(score):
        if score <= 1:
            return round_half_up(score * 100)
        return _clamp_pct(score)

    return None


def row_date(row: Mapping) -> Optional[datetime]:
    value = _first_present(row, DATE_KEYS)
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return None
    return None


def month_key(d: datetime) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def _bucket_means(buckets: dict) -> dict:
    return {
        key: round_half_up(total / count)
        for key, (total, count) in buckets.items()
        if count
    }


def monthly_series(rows: Iterable[Mapping]) -> List[dict]:
    """
    Mean percent per calendar month, ascending.

    Months without a scorable attempt are absent, not zero.
    """
    buckets = {}
    for row in rows:
        score = to_pct(row)
        d = row_date(row)
        if score is None or d is None:
            continue
        total, count = buckets.get(month_key(d), (0, 0))
        buckets[month_key(d)] = (total + score, count + 1)

    means = _bucket_means(buckets)
    return [{"month": month, "score": means[month]} for month in sorted(means)]


def class_year_series(classes: Iterable[Mapping], students: Iterable[Mapping],
                      rows: Iterable[Mapping]) -> List[dict]:
    """monthly_series per class for every class in a year group."""
    class_of = {s["id"]: s.get("class_id") for s in students}
    rows_by_class = {}
    for row in rows:
        class_id = class_of.get(row.get("student_id"))
        if class_id is None:
            continue
        rows_by_class.setdefault(class_id, []).append(row)

    return [
        {**c, "series": monthly_series(rows_by_class.get(c["id"], []))}
        for c in classes
    ]


def pupil_series(rows: Iterable[Mapping]) -> List[dict]:
    """One {date, score, secsPerQ} point per scorable attempt, oldest first."""
    points = []
    for row in rows:
        score = to_pct(row)
        d = row_date(row)
        if score is None or d is None:
            continue
        points.append({
            "date": d.isoformat(),
            "score": score,
            "secsPerQ": row.get("seconds_per_question"),
        })
    points.sort(key=lambda p: p["date"])
    return points


def _accuracy(correct: int, total: int) -> Optional[int]:
    return round_half_up(correct / total * 100) if total > 0 else None


def table_heatmap(records: Iterable[Mapping]) -> List[dict]:
    """
    Correct/total per times table 1..19.

    Records with a table outside that range are ignored. Tables with no
    records have accuracy None.
    """
    cells = {
        n: {"table_num": n, "total": 0, "correct": 0, "accuracy": None}
        for n in range(MIN_TABLE, MAX_TABLE + 1)
    }
    for record in records:
        table_num = record.get("table_num")
        if not isinstance(table_num, int) or table_num not in cells:
            continue
        cell = cells[table_num]
        cell["total"] += 1
        if record.get("is_correct"):
            cell["correct"] += 1

    for cell in cells.values():
        cell["accuracy"] = _accuracy(cell["correct"], cell["total"])
        cell["band"] = accuracy_band(cell["accuracy"])["key"]
    return list(cells.values())


def accuracy_band(accuracy: Optional[int]) -> dict:
    """Map an accuracy to its display band ({key, label})."""
    if accuracy is None:
        key, label = NO_DATA_BAND
        return {"key": key, "label": label}
    for lower, key, label in ACCURACY_BANDS:
        if accuracy >= lower:
            return {"key": key, "label": label}
    _, key, label = ACCURACY_BANDS[-1]
    return {"key": key, "label": label}


def table_breakdown(students: Iterable[Mapping], records: Iterable[Mapping],
                    table_num: int) -> dict:
    """Per-pupil accuracy on one times table, plus a scope summary."""
    per_student = {}
    for record in records:
        if record.get("table_num") != table_num:
            continue
        total, correct = per_student.get(record.get("student_id"), (0, 0))
        per_student[record.get("student_id")] = (
            total + 1, correct + (1 if record.get("is_correct") else 0)
        )

    breakdown = []
    for s in students:
        total, correct = per_student.get(s["id"], (0, 0))
        breakdown.append({
            "student_id": s["id"],
            "name": s.get("name"),
            "class_label": s.get("class_label"),
            "total": total,
            "correct": correct,
            "accuracy": _accuracy(correct, total),
        })
    # Weakest first, pupils with no data last
    breakdown.sort(key=lambda r: (r["accuracy"] is None, r["accuracy"] or 0, r["name"] or ""))

    total = sum(r["total"] for r in breakdown)
    correct = sum(r["correct"] for r in breakdown)
    return {
        "breakdown": breakdown,
        "summary": {"total": total, "correct": correct, "accuracy": _accuracy(correct, total)},
    }


def last_months(now: datetime, count: int = OVERVIEW_MONTHS) -> List[str]:
    """Month keys for the last `count` calendar months, current month last."""
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def class_overview(students: Iterable[Mapping], rows: Iterable[Mapping],
                   now: datetime) -> dict:
    """Pupils x last six months grid of monthly mean percents (None if no data)."""
    months = last_months(now)
    wanted = set(months)
    buckets = {}
    for row in rows:
        d = row_date(row)
        if d is None or month_key(d) not in wanted:
            continue
        score = to_pct(row)
        if score is None:
            continue
        key = (row.get("student_id"), month_key(d))
        total, count = buckets.get(key, (0, 0))
        buckets[key] = (total + score, count + 1)

    means = _bucket_means(buckets)
    out = []
    for s in students:
        out.append({
            "id": s["id"],
            "name": s.get("name"),
            "class_label": s.get("class_label"),
            "values": {m: means.get((s["id"], m)) for m in months},
        })
    return {"months": months, "students": out}


def clamp_window(window_days) -> int:
    try:
        days = int(window_days)
    except (TypeError, ValueError):
        days = DEFAULT_WINDOW_DAYS
    return max(MIN_WINDOW_DAYS, min(MAX_WINDOW_DAYS, days))


def improvers_and_concerns(students: Iterable[Mapping], rows: Iterable[Mapping],
                           window_days: int, now: datetime) -> dict:
    """
    Compare each pupil's recent window with the window before it.

    recent   = [now - w, now]
    previous = [now - 2w, now - w)

    Top improvers: >= 2 attempts in both windows and a positive delta,
    largest delta first. Concerns: recent average <= 70 with >= 2 recent
    attempts, lowest first. Both lists hold at most 10 pupils.
    """
    window = clamp_window(window_days)
    recent_start = now - timedelta(days=window)
    prev_start = now - timedelta(days=window * 2)

    stats = {}
    for row in rows:
        sid = row.get("student_id")
        score = to_pct(row)
        d = row_date(row)
        if not sid or score is None or d is None:
            continue
        st = stats.setdefault(sid, {"recent": [], "prev": []})
        if d >= recent_start:
            st["recent"].append(score)
        elif d >= prev_start:
            st["prev"].append(score)

    student_by_id = {s["id"]: s for s in students}
    table = []
    for sid, st in stats.items():
        s = student_by_id.get(sid)
        if s is None:
            continue
        recent_avg = round_half_up(sum(st["recent"]) / len(st["recent"])) if st["recent"] else None
        prev_avg = round_half_up(sum(st["prev"]) / len(st["prev"])) if st["prev"] else None
        delta = recent_avg - prev_avg if recent_avg is not None and prev_avg is not None else None
        table.append({
            "student_id": sid,
            "name": s.get("name"),
            "class_label": s.get("class_label"),
            "recentAvg": recent_avg,
            "prevAvg": prev_avg,
            "delta": delta,
            "recentCount": len(st["recent"]),
            "prevCount": len(st["prev"]),
        })

    top_improvers = sorted(
        (r for r in table
         if r["delta"] is not None and r["delta"] > 0
         and r["recentCount"] >= INSIGHT_MIN_ATTEMPTS and r["prevCount"] >= INSIGHT_MIN_ATTEMPTS),
        key=lambda r: (-r["delta"], -r["recentAvg"])
    )[:INSIGHT_LIST_SIZE]

    concerns = sorted(
        (r for r in table
         if r["recentAvg"] is not None and r["recentAvg"] <= CONCERN_THRESHOLD
         and r["recentCount"] >= INSIGHT_MIN_ATTEMPTS),
        key=lambda r: r["recentAvg"]
    )[:INSIGHT_LIST_SIZE]

    return {"windowDays": window, "topImprovers": top_improvers, "concerns": concerns}
