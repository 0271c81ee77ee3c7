"""Tests for environment-driven tracker configuration."""

from __future__ import annotations

import pytest

from core.config import TrackerConfig


def test_defaults_from_empty_environment() -> None:
    config = TrackerConfig.from_env({})

    assert config.entity == "wintermute"
    assert config.balances_interval_ms == 300_000
    assert config.transfers_interval_ms == 30_000
    assert config.force_lookback_min == 0
    assert config.older_baseline_min == 0
    assert config.max_snapshots == 100
    assert config.min_snapshots == 10
    assert config.transfer_top_n == 100
    assert config.database_url is None
    assert config.upstream.balances_path == "/balances/entity/wintermute?cheap=false"
    config.validate()


def test_reads_overrides_and_lowercases_entity() -> None:
    config = TrackerConfig.from_env(
        {
            "ENTITY": "Jump",
            "INTERVAL_MS": "60000",
            "FORCE_LOOKBACK_MIN": "15",
            "OLDER_BASELINE_MINUTES": "7.5",
            "MAX_SNAPSHOTS": "50",
            "MIN_SNAPSHOTS": "5",
            "DATABASE_URL": "postgresql://u:p@localhost/db",
        }
    )

    assert config.entity == "jump"
    assert config.balances_interval_ms == 60_000
    assert config.force_lookback_min == 15
    assert config.older_baseline_min == 7.5
    assert config.max_snapshots == 50
    assert config.min_snapshots == 5
    assert config.database_url == "postgresql://u:p@localhost/db"
    assert config.upstream.balances_path == "/balances/entity/jump?cheap=false"


@pytest.mark.parametrize("raw", ["", "abc", "nan", "inf"])
def test_malformed_numbers_fall_back_to_defaults(raw) -> None:
    config = TrackerConfig.from_env({"INTERVAL_MS": raw, "MAX_SNAPSHOTS": raw})

    assert config.balances_interval_ms == 300_000
    assert config.max_snapshots == 100


def test_header_aliases_and_optional_headers() -> None:
    config = TrackerConfig.from_env(
        {"ARKHAM_COOKIE": "c", "ARKHAM_XPAYLOAD": "p", "ARKHAM_X_TIMESTAMP": "123", "ARKHAM_SEC_GPC": "1"}
    )

    headers = config.upstream.headers
    assert headers["cookie"] == "c"
    assert headers["x-payload"] == "p"
    assert headers["x-timestamp"] == "123"
    assert headers["sec-gpc"] == "1"
    assert "sec-fetch-mode" not in headers


def test_validate_rejects_floor_not_below_ceiling() -> None:
    config = TrackerConfig.from_env({"MAX_SNAPSHOTS": "10", "MIN_SNAPSHOTS": "10"})

    with pytest.raises(ValueError, match="MIN_SNAPSHOTS"):
        config.validate()


def test_validate_rejects_non_positive_intervals() -> None:
    config = TrackerConfig.from_env({"INTERVAL_MS": "0", "TRANSFER_INTERVAL_MS": "-5"})

    with pytest.raises(ValueError) as exc_info:
        config.validate()
    assert "INTERVAL_MS" in str(exc_info.value)
    assert "TRANSFER_INTERVAL_MS" in str(exc_info.value)
