"""Tests for the feedly-budget CLI."""

from datetime import UTC, datetime

from typer.testing import CliRunner

from feedlyclient.budget.store import StateStore
from feedlyclient.cache import ResponseCache
from feedlyclient.cli import app
from feedlyclient.clock import ManualClock, SystemClock

runner = CliRunner()


def _seed(path, **by_consumer) -> None:
    store = StateStore(path, clock=SystemClock())
    state = store.load()
    for consumer, used in by_consumer.items():
        state.daily.by_consumer[consumer.replace("_", "-")] = used
    state.daily.total = sum(state.daily.by_consumer.values())
    store.save(state)


def test_status_prints_report(tmp_path):
    path = tmp_path / "state.json"
    _seed(path, landscape=12)
    result = runner.invoke(app, ["status", "--state", str(path)])
    assert result.exit_code == 0
    assert "Rate Budget Status" in result.stdout
    assert "landscape: 12 / 300" in result.stdout


def test_check_allowed(tmp_path):
    result = runner.invoke(app, ["check", "cyber-ops", "--state", str(tmp_path / "state.json")])
    assert result.exit_code == 0
    assert "Allowed" in result.stdout
    assert "1000" in result.stdout


def test_check_denied_exits_nonzero(tmp_path):
    path = tmp_path / "state.json"
    _seed(path, twitter_bot=500)
    result = runner.invoke(app, ["check", "twitter-bot", "--state", str(path)])
    assert result.exit_code == 1
    assert "daily limit reached" in result.stdout


def test_corrupt_state_reports_error(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{")
    result = runner.invoke(app, ["status", "--state", str(path)])
    assert result.exit_code == 1
    assert "Error" in result.stdout


def test_budgets_lists_allocations(tmp_path):
    result = runner.invoke(app, ["budgets"])
    assert result.exit_code == 0
    for consumer in ["cyber-ops", "twitter-bot", "landscape", "reserve"]:
        assert consumer in result.stdout


def test_budgets_with_custom_table(tmp_path):
    path = tmp_path / "budgets.yaml"
    path.write_text("global_daily_limit: 99\nconsumers:\n  reserve: {daily_limit: 9, hourly_limit: 1, priority: 3}\n")
    result = runner.invoke(app, ["budgets", "--budgets", str(path)])
    assert result.exit_code == 0
    assert "99" in result.stdout


def _seed_cache(cache_dir) -> None:
    cache = ResponseCache(cache_dir, ManualClock(datetime(2020, 1, 1, tzinfo=UTC)))
    cache.set("search", "/v3/search?q=old", {"old": True})
    ResponseCache(cache_dir).set("trending", "/v3/trending", {"new": True})


def test_cache_stats_reports_counts(tmp_path):
    _seed_cache(tmp_path / "cache")
    result = runner.invoke(app, ["cache-stats", "--cache-dir", str(tmp_path / "cache")])
    assert result.exit_code == 0
    assert "2 entries, 1 live, 1 expired" in result.stdout
    assert "search" in result.stdout
    assert "trending" in result.stdout


def test_purge_deletes_expired_entries(tmp_path):
    _seed_cache(tmp_path / "cache")
    result = runner.invoke(app, ["purge", "--cache-dir", str(tmp_path / "cache")])
    assert result.exit_code == 0
    assert "Purged 1 expired entries, 1 live entries remain" in result.stdout
    assert not list((tmp_path / "cache" / "search").glob("*.json"))
