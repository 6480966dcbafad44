from __future__ import annotations

import threading

import pytest

from scanocr.aggregator import PageResultCollector, aggregate, format_page
from scanocr.models import PageResult, PageStatus


def _sections(text: str):
    return [line for line in text.splitlines() if line.startswith("--- Page ")]


def test_aggregate_orders_by_page_not_arrival():
    arrived = [
        PageResult.ok(3, "third"),
        PageResult.ok(1, "first"),
        PageResult.ok(2, "second"),
    ]

    report = aggregate(3, arrived, language="eng")

    assert _sections(report.text) == ["--- Page 1 ---", "--- Page 2 ---", "--- Page 3 ---"]
    assert report.text == "--- Page 1 ---\nfirst\n\n--- Page 2 ---\nsecond\n\n--- Page 3 ---\nthird"
    assert [p.page_number for p in report.pages] == [1, 2, 3]


def test_failed_pages_keep_their_slot_with_markers():
    results = [
        PageResult.ok(1, "first"),
        PageResult.conversion_failed(2, "image not found after rendering"),
        PageResult.recognition_failed(3, "engine crashed"),
    ]

    report = aggregate(3, results)

    assert "--- Page 2 ---\n[Conversion Error] image not found after rendering" in report.text
    assert "--- Page 3 ---\n[Error: engine crashed]" in report.text
    assert report.succeeded_pages == 1
    assert report.failed_pages == [2, 3]
    assert report.is_partial


def test_format_page_strips_engine_whitespace():
    assert format_page(PageResult.ok(4, "  hello\n\f")) == "--- Page 4 ---\nhello"
    assert format_page(PageResult.ok(5, "")) == "--- Page 5 ---"


@pytest.mark.parametrize(
    "results, message",
    [
        ([PageResult.ok(1, "a")], "missing pages [2]"),
        ([PageResult.ok(1, "a"), PageResult.ok(1, "b"), PageResult.ok(2, "c")], "duplicate pages [1]"),
        ([PageResult.ok(1, "a"), PageResult.ok(2, "b"), PageResult.ok(3, "c")], "outside 1..2"),
    ],
)
def test_aggregate_requires_exactly_one_result_per_page(results, message):
    with pytest.raises(ValueError, match=message.replace("[", r"\[").replace("]", r"\]")):
        aggregate(2, results)


def test_zero_pages_gives_empty_report():
    report = aggregate(0, [], language="eng")

    assert report.text == ""
    assert report.page_count == 0
    assert report.pages == ()


def test_collector_slots_are_write_once():
    collector = PageResultCollector(2)
    collector.put(PageResult.ok(1, "a"))

    with pytest.raises(ValueError, match="already has a result"):
        collector.put(PageResult.recognition_failed(1, "late"))
    with pytest.raises(ValueError, match="outside"):
        collector.put(PageResult.ok(3, "c"))

    assert collector.missing() == [2]
    assert not collector.complete


def test_collector_accepts_concurrent_inserts_and_tracks_completion_order():
    total = 50
    collector = PageResultCollector(total)
    barrier = threading.Barrier(10)

    def worker(offset: int):
        barrier.wait()
        for n in range(offset, total + 1, 10):
            collector.put(PageResult.ok(n, f"p{n}"))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(1, 11)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert collector.complete
    assert [r.page_number for r in collector.results()] == list(range(1, total + 1))
    assert sorted(e.page for e in collector.progress) == list(range(1, total + 1))
    assert all(e.status is PageStatus.OK for e in collector.progress)
