from types import SimpleNamespace

from app.inventory.low_stock import (
    LowStockMonitor,
    effective_threshold,
    find_low_stock,
    is_low,
    summarize,
)


def item(id, quantity, threshold=None, name=None):
    return {"id": id, "name": name or id, "quantity": quantity, "low_stock_threshold": threshold}


def test_threshold_defaults_to_five():
    assert effective_threshold(None) == 5
    assert effective_threshold(0) == 0
    assert is_low(5, None)
    assert not is_low(6, None)
    assert is_low(0, 0)


def test_find_low_stock_sorts_lowest_first_and_accepts_rows():
    rows = [
        item("a", 4, name="Alpha"),
        SimpleNamespace(id="b", name="Beta", quantity=0, low_stock_threshold=2),
        item("c", 50, 10),
        item("d", 10, 10, name="Delta"),
    ]

    low = find_low_stock(rows)

    assert [entry.id for entry in low] == ["b", "a", "d"]
    assert low[0].level == "OUT"
    assert low[1].level == "LOW"


def test_summarize_splits_critical():
    summary = summarize(find_low_stock([item("a", 0), item("b", 2)]))

    assert [entry.id for entry in summary["critical"]] == ["a"]
    assert [entry.id for entry in summary["low"]] == ["b"]


def test_monitor_reports_each_item_once_until_it_recovers():
    monitor = LowStockMonitor()

    first = monitor.check([item("a", 3), item("b", 20)])
    assert [entry.id for entry in first] == ["a"]

    # still low, already reported
    assert monitor.check([item("a", 2), item("b", 20)]) == []

    # b drops, a recovers
    second = monitor.check([item("a", 30), item("b", 1)])
    assert [entry.id for entry in second] == ["b"]
    assert monitor.notified == {"b"}

    # a drops again and is reported again
    third = monitor.check([item("a", 4), item("b", 1)])
    assert [entry.id for entry in third] == ["a"]


def test_monitor_forgets_deleted_items():
    monitor = LowStockMonitor()
    monitor.check([item("a", 1)])

    monitor.check([])

    assert monitor.notified == set()


def test_monitor_reset():
    monitor = LowStockMonitor(default_threshold=2)
    assert [entry.id for entry in monitor.check([item("a", 2), item("b", 3)])] == ["a"]

    monitor.reset()

    assert [entry.id for entry in monitor.check([item("a", 2)])] == ["a"]
