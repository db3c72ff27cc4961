"""Tests for configuration loading and worker wiring."""
from __future__ import annotations

import json

import pytest

from scrape_queue.config import (
    ConfigurationError,
    StaticSettingsProvider,
    WorkerConfig,
    build_settings_provider,
    load_configuration,
    mask_key,
)
from scrape_queue.factory import build_pacer, build_processor
from scrape_queue.rate_limit import FixedDelay, RateLimiter
from scrape_queue.store import InMemoryJobStore


def test_load_configuration_reads_json(tmp_path) -> None:
    path = tmp_path / "worker.json"
    path.write_text(json.dumps({"worker": {"poll_interval_seconds": 5}}), encoding="utf-8")

    assert load_configuration(path) == {"worker": {"poll_interval_seconds": 5}}


def test_load_configuration_reads_yaml(tmp_path) -> None:
    pytest.importorskip("yaml")
    path = tmp_path / "worker.yaml"
    path.write_text("supabase:\n  bucket: exports\nverifier:\n  delay_seconds: 0.5\n", encoding="utf-8")

    config = WorkerConfig.from_mapping(load_configuration(path), env={})

    assert config.storage_bucket == "exports"
    assert config.verify_delay_seconds == 0.5


def test_load_configuration_returns_empty_mapping_for_blank_file(tmp_path) -> None:
    pytest.importorskip("yaml")
    path = tmp_path / "empty.yml"
    path.write_text("", encoding="utf-8")

    assert load_configuration(path) == {}


@pytest.mark.parametrize(
    "name, content",
    [
        ("worker.toml", "x = 1"),
        ("worker.json", "[1, 2]"),
    ],
)
def test_load_configuration_rejects_bad_files(tmp_path, name, content) -> None:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_configuration(path)


def test_load_configuration_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="was not found"):
        load_configuration(tmp_path / "missing.json")


def test_worker_config_defaults_and_environment_fallback() -> None:
    config = WorkerConfig.from_mapping(
        {}, env={"SUPABASE_URL": "https://db.test", "SUPABASE_SERVICE_ROLE_KEY": "service"}
    )

    assert config.require_supabase() == ("https://db.test", "service")
    assert config.queue_table == "scrape_queue"
    assert config.storage_bucket == "scrapes"
    assert config.fetch_timeout_seconds == 5.0
    assert config.fetch_max_attempts == 3
    assert config.verify_delay_seconds == 0.3
    assert config.stale_after_minutes == 30


def test_worker_config_file_values_win_over_environment() -> None:
    config = WorkerConfig.from_mapping(
        {"supabase": {"url": "https://file.test", "service_role_key": "file-key"}},
        env={"SUPABASE_URL": "https://env.test"},
    )

    assert config.supabase_url == "https://file.test"


def test_worker_config_invalid_numbers_are_configuration_errors() -> None:
    with pytest.raises(ConfigurationError):
        WorkerConfig.from_mapping({"provider": {"timeout_seconds": "soon"}}, env={})


def test_require_supabase_reports_missing_values() -> None:
    with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
        WorkerConfig().require_supabase()


def test_static_keys_in_config_take_precedence_over_settings_table() -> None:
    config = WorkerConfig(targetron_api_key="tk-file", million_verifier_api_key="mv-file")

    keys = build_settings_provider(config).get_provider_keys()

    assert (keys.targetron_api_key, keys.million_verifier_api_key) == ("tk-file", "mv-file")


def test_settings_provider_requires_both_keys() -> None:
    with pytest.raises(ConfigurationError, match="Million Verifier"):
        StaticSettingsProvider({"targetronApiKey": "tk"}).get_provider_keys()


def test_mask_key_only_shows_prefix() -> None:
    assert mask_key("abcdefghij") == "abcdef..."
    assert mask_key("") == ""


def test_build_processor_with_local_output_needs_no_supabase(tmp_path, clock) -> None:
    config = WorkerConfig(
        output_dir=str(tmp_path),
        targetron_api_key="tk",
        million_verifier_api_key="mv",
    )

    processor = build_processor(config, store=InMemoryJobStore(clock=clock))

    assert processor.run_once() is None


def test_build_processor_without_supabase_credentials_fails(tmp_path) -> None:
    with pytest.raises(ConfigurationError):
        build_processor(WorkerConfig(output_dir=str(tmp_path)))


def test_verifier_pacing_defaults_to_fixed_delay() -> None:
    pacer = build_pacer(WorkerConfig.from_mapping({}, env={}))

    assert isinstance(pacer, FixedDelay)
    assert pacer.delay_seconds == 0.3


def test_verifier_calls_per_minute_switches_to_rate_limiter() -> None:
    config = WorkerConfig.from_mapping({"verifier": {"calls_per_minute": 120}}, env={})

    assert config.verify_calls_per_minute == 120.0
    assert isinstance(build_pacer(config), RateLimiter)
