from zoneinfo import ZoneInfo

from metrics import ExpenseSummary, summarize_expenses, top_category
from schemas import ExpenseRecord


def _expense(category, amount, timestamp) -> ExpenseRecord:
    return ExpenseRecord(
        expense_category=category, monthly_amount=amount, timestamp=timestamp
    )


def test_latest_month_is_month_of_newest_expense() -> None:
    records = [
        _expense("Housing", "$1,200.00", "2024-01-03"),
        _expense("Food", 300, "2024-02-10"),
        _expense("Food", "45.50", "2024-03-02"),
        _expense("Travel", "120", "2024-03-28T18:00:00"),
        _expense("Housing", 1200, "2024-02-03"),
    ]
    summary = summarize_expenses(records)

    assert summary.latest_month_key == "2024-03"
    assert summary.latest_month == {"Food": 45.5, "Travel": 120.0}
    assert summary.all_time == {"Housing": 2400.0, "Food": 345.5, "Travel": 120.0}
    assert top_category(summary) == "Travel"


def test_latest_month_is_not_the_current_month() -> None:
    summary = summarize_expenses([_expense("Food", 10, "2019-07-04")])
    assert summary.latest_month_key == "2019-07"
    assert summary.latest_month == {"Food": 10.0}


def test_undated_records_are_dropped() -> None:
    records = [
        _expense("Food", 10, None),
        _expense("Food", 20, "not a date"),
        _expense(None, 5, "2024-04-01"),
    ]
    summary = summarize_expenses(records)
    assert summary.all_time == {"Uncategorized": 5.0}
    assert summary.latest_month == {"Uncategorized": 5.0}


def test_no_usable_expenses_gives_empty_summary() -> None:
    assert summarize_expenses([]) == ExpenseSummary()
    assert summarize_expenses([_expense("Food", 10, "")]) == ExpenseSummary()
    assert top_category(summarize_expenses([])) == "N/A"


def test_top_category_falls_back_to_all_time() -> None:
    summary = ExpenseSummary(all_time={"Food": 10.0, "Rent": 900.0}, latest_month={})
    assert top_category(summary) == "Rent"


def test_top_category_ties_keep_first_seen() -> None:
    summary = summarize_expenses(
        [_expense("Food", 50, "2024-05-01"), _expense("Fuel", 50, "2024-05-02")]
    )
    assert top_category(summary) == "Food"


def test_aware_timestamps_use_configured_timezone() -> None:
    records = [
        _expense("Food", 10, "2024-01-15"),
        # New York is on standard time (UTC-5) in January.
        _expense("Fuel", 20, "2024-01-31T23:30:00-05:00"),
    ]
    in_utc = summarize_expenses(records, tz=ZoneInfo("UTC"))
    assert in_utc.latest_month_key == "2024-02"
    assert in_utc.latest_month == {"Fuel": 20.0}

    in_new_york = summarize_expenses(records, tz=ZoneInfo("America/New_York"))
    assert in_new_york.latest_month_key == "2024-01"
    assert in_new_york.latest_month == {"Food": 10.0, "Fuel": 20.0}
