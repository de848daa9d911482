"""Tests for docgrid.core.usage_tracker."""

import csv

import pytest

from docgrid.core.usage_tracker import (
    CSV_HEADER,
    ProviderUsage,
    UsageTracker,
    pricing_model,
    table_price,
)


@pytest.fixture
def tracker():
    tracker = UsageTracker()
    tracker.record(ProviderUsage(
        provider="gemini", model="gemini-2.5-flash",
        prompt_tokens=1000, completion_tokens=200, thoughts_tokens=50,
        table_id="t1", row_id="r1",
    ))
    tracker.record(ProviderUsage(
        provider="openrouter", model="openrouter/openai/gpt-4o-mini",
        prompt_tokens=500, completion_tokens=100, cached_tokens=400,
        table_id="t1", row_id="r2",
    ))
    tracker.record(ProviderUsage(provider="chatpdf", model="chatpdf", table_id="t1", row_id="r3"))
    return tracker


class TestTotals:
    def test_counts(self, tracker):
        assert tracker.call_count == 3
        assert tracker.total_prompt_tokens == 1500
        assert tracker.total_completion_tokens == 300

    def test_total_includes_thoughts(self, tracker):
        assert tracker.calls[0].total_tokens == 1250
        assert tracker.total_tokens == 1250 + 600

    def test_by_provider(self, tracker):
        stats = tracker.by_provider()
        assert set(stats) == {"gemini", "openrouter", "chatpdf"}
        assert stats["chatpdf"] == {"calls": 1, "total_tokens": 0, "cost": 0.0}

    def test_to_dict(self, tracker):
        data = tracker.to_dict()
        assert data["calls"] == 3
        assert data["total_tokens"] == 1850
        assert "by_provider" in data

    def test_summary_mentions_providers(self, tracker):
        summary = tracker.summary()
        assert "Provider calls: 3" in summary
        assert "openrouter" in summary


class TestPricing:
    def test_chatpdf_is_free(self):
        assert ProviderUsage(provider="chatpdf", model="chatpdf").cost == 0.0

    def test_openrouter_prefix_stripped(self):
        assert pricing_model("openrouter/openai/gpt-4o-mini") == "openai/gpt-4o-mini"
        assert pricing_model("gemini-2.5-flash") == "gemini-2.5-flash"

    def test_fallback_table(self):
        cost = table_price("openrouter/openai/gpt-4o-mini", 1_000_000, 1_000_000)
        assert cost == pytest.approx(0.75)

    def test_unknown_model_costs_nothing(self):
        assert table_price("acme/unknown", 1000, 1000) == 0.0


class TestCsv:
    def test_new_file_gets_header(self, tracker, tmp_path):
        path = tracker.write_csv(tmp_path / "usage.csv")

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0] == CSV_HEADER
        assert len(rows) == 4
        assert rows[1][1:5] == ["gemini", "gemini-2.5-flash", "t1", "r1"]

    def test_append_skips_header(self, tracker, tmp_path):
        path = tmp_path / "usage.csv"
        tracker.write_csv(path)
        tracker.write_csv(path)

        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows.count(CSV_HEADER) == 1
        assert len(rows) == 7
