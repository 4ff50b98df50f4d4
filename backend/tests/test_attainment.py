from datetime import datetime, timedelta

import pytest

from timestables.services.attainment import (
    accuracy_band, class_overview, clamp_window, improvers_and_concerns, last_months,
    monthly_series, pupil_series, round_half_up, table_breakdown, table_heatmap, to_pct
)

NOW = datetime(2026, 3, 15, 12, 0, 0)


# ── to_pct ───────────────────────────────────────────────────

@pytest.mark.parametrize("row, expected", [
    ({"correct": 7, "total": 10}, 70),
    ({"score": 0.7}, 70),
    ({"score": 70}, 70),
    ({"percent": 70.4}, 70),
    ({"percent": 70.5}, 71),
    ({"score_percent": 150}, 100),
    ({"percentage": -5}, 0),
    ({"correct_count": 5, "total_count": 8}, 63),
    ({"score": 1}, 100),
    ({"score": 250}, 100),
])
def test_to_pct(row, expected):
    assert to_pct(row) == expected


def test_to_pct_priority():
    # An explicit percent wins over correct/total and score
    assert to_pct({"percent": 40, "correct": 9, "total": 10, "score": 0.9}) == 40
    # correct/total wins over score
    assert to_pct({"correct": 3, "total": 4, "score": 0.1}) == 75


def test_to_pct_unusable_rows():
    assert to_pct({}) is None
    assert to_pct({"correct": 3, "total": 0}) is None
    assert to_pct({"percent": True}) is None
    assert to_pct({"score": "70"}) is None
    assert to_pct({"percent": float("nan")}) is None


def test_round_half_up():
    assert round_half_up(62.5) == 63
    assert round_half_up(0.5) == 1
    assert round_half_up(2.4999) == 2


# ── series ───────────────────────────────────────────────────

def test_monthly_series_means_per_month():
    rows = [
        {"percent": 60, "created_at": datetime(2026, 1, 3)},
        {"percent": 81, "created_at": datetime(2026, 1, 20)},
        {"correct": 9, "total": 10, "created_at": datetime(2026, 3, 1)},
        {"created_at": datetime(2026, 2, 1)},
        {"percent": 50},
    ]
    assert monthly_series(rows) == [
        {"month": "2026-01", "score": 71},
        {"month": "2026-03", "score": 90},
    ]


def test_monthly_series_accepts_iso_strings():
    rows = [{"percent": 80, "created_at": "2026-02-28T23:30:00Z"}]
    assert monthly_series(rows) == [{"month": "2026-02", "score": 80}]


def test_pupil_series_is_date_ordered():
    rows = [
        {"percent": 90, "created_at": datetime(2026, 2, 2), "seconds_per_question": 3},
        {"percent": 40, "created_at": datetime(2026, 1, 2), "seconds_per_question": 6},
    ]
    series = pupil_series(rows)
    assert [p["score"] for p in series] == [40, 90]
    assert series[0]["secsPerQ"] == 6
    assert series[0]["date"].startswith("2026-01-02")


# ── heatmap ──────────────────────────────────────────────────

def test_heatmap_table_seven():
    records = [{"table_num": 7, "is_correct": i < 6} for i in range(10)]
    cells = {c["table_num"]: c for c in table_heatmap(records)}

    assert sorted(cells) == list(range(1, 20))
    assert cells[7]["total"] == 10
    assert cells[7]["correct"] == 6
    assert cells[7]["accuracy"] == 60
    assert accuracy_band(cells[7]["accuracy"])["label"] == "Developing (50–74%)"

    assert cells[3]["accuracy"] is None
    assert accuracy_band(cells[3]["accuracy"])["label"] == "No data yet"


def test_heatmap_ignores_out_of_range_tables():
    cells = table_heatmap([{"table_num": 25, "is_correct": True}, {"table_num": 0}])
    assert all(c["total"] == 0 for c in cells)


@pytest.mark.parametrize("accuracy, key", [
    (100, "strong"), (90, "strong"), (89, "secure"), (75, "secure"),
    (74, "developing"), (50, "developing"), (49, "weak"), (25, "weak"),
    (24, "very_weak"), (0, "very_weak"), (None, "no_data"),
])
def test_accuracy_bands(accuracy, key):
    assert accuracy_band(accuracy)["key"] == key


def test_table_breakdown_weakest_first():
    students = [
        {"id": "s1", "name": "Amy", "class_label": "M4"},
        {"id": "s2", "name": "Ben", "class_label": "M4"},
        {"id": "s3", "name": "Cal", "class_label": "M4"},
    ]
    records = (
        [{"student_id": "s1", "table_num": 8, "is_correct": True}] * 4
        + [{"student_id": "s2", "table_num": 8, "is_correct": i < 1} for i in range(4)]
        + [{"student_id": "s1", "table_num": 9, "is_correct": False}]
    )
    result = table_breakdown(students, records, 8)

    assert [r["student_id"] for r in result["breakdown"]] == ["s2", "s1", "s3"]
    assert result["breakdown"][0]["accuracy"] == 25
    assert result["breakdown"][2]["accuracy"] is None
    assert result["summary"] == {"total": 8, "correct": 5, "accuracy": 63}


# ── overview ─────────────────────────────────────────────────

def test_last_months_crosses_year_boundary():
    assert last_months(datetime(2026, 2, 10)) == [
        "2025-09", "2025-10", "2025-11", "2025-12", "2026-01", "2026-02"
    ]


def test_class_overview_grid():
    students = [{"id": "s1", "name": "Amy", "class_label": "M4"},
                {"id": "s2", "name": "Ben", "class_label": "M4"}]
    rows = [
        {"student_id": "s1", "percent": 70, "created_at": datetime(2026, 3, 1)},
        {"student_id": "s1", "percent": 81, "created_at": datetime(2026, 3, 9)},
        {"student_id": "s1", "percent": 10, "created_at": datetime(2025, 6, 1)},
    ]
    grid = class_overview(students, rows, NOW)
    assert grid["months"][-1] == "2026-03"
    assert len(grid["months"]) == 6
    amy, ben = grid["students"]
    assert amy["values"]["2026-03"] == 76
    assert amy["values"]["2026-02"] is None
    assert all(v is None for v in ben["values"].values())


# ── improvers / concerns ─────────────────────────────────────

def _row(student_id, pct, days_ago):
    return {"student_id": student_id, "percent": pct, "created_at": NOW - timedelta(days=days_ago)}


def test_improvers_and_concerns():
    students = [
        {"id": "improver", "name": "Ivy", "class_label": "M4"},
        {"id": "concern", "name": "Cole", "class_label": "M4"},
        {"id": "single", "name": "Sol", "class_label": "B4"},
    ]
    rows = [
        _row("improver", 60, 40), _row("improver", 60, 45), _row("improver", 60, 50),
        _row("improver", 75, 5), _row("improver", 75, 10),
        _row("concern", 65, 3), _row("concern", 65, 12),
        _row("single", 20, 2),
    ]
    result = improvers_and_concerns(students, rows, 30, NOW)

    assert result["windowDays"] == 30
    assert [r["student_id"] for r in result["topImprovers"]] == ["improver"]
    top = result["topImprovers"][0]
    assert top["delta"] == 15
    assert top["prevAvg"] == 60
    assert top["recentAvg"] == 75
    assert (top["prevCount"], top["recentCount"]) == (3, 2)

    assert [r["student_id"] for r in result["concerns"]] == ["concern"]
    assert result["concerns"][0]["recentAvg"] == 65


def test_improver_needs_two_attempts_in_each_window():
    students = [{"id": "s", "name": "Sid", "class_label": "M4"}]
    rows = [_row("s", 50, 40), _row("s", 90, 5), _row("s", 90, 6)]
    result = improvers_and_concerns(students, rows, 30, NOW)
    assert result["topImprovers"] == []


def test_lists_are_sorted_and_capped():
    students = [{"id": f"s{i}", "name": f"P{i}", "class_label": "M4"} for i in range(12)]
    rows = []
    for i in range(12):
        rows += [_row(f"s{i}", 10 + i, 1), _row(f"s{i}", 10 + i, 2)]
    concerns = improvers_and_concerns(students, rows, 30, NOW)["concerns"]
    assert len(concerns) == 10
    assert [c["recentAvg"] for c in concerns] == list(range(10, 20))


@pytest.mark.parametrize("value, expected", [
    (3, 7), (7, 7), (45, 45), (90, 90), (400, 90), ("14", 14), ("abc", 30), (None, 30),
])
def test_clamp_window(value, expected):
    assert clamp_window(value) == expected
