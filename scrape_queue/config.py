"""Configuration helpers for the scrape queue worker."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration files, settings or API keys are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}

SCRAPER_SETTINGS_KEY = "scraperSettings"


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - dependency optional
            raise ConfigurationError(
                "YAML configuration requires the 'pyyaml' package to be installed"
            ) from exc
        data = yaml.safe_load(text)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class WorkerConfig:
    """Typed runtime settings for the queue worker."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    queue_table: str = "scrape_queue"
    settings_table: str = "settings"
    settings_key: str = SCRAPER_SETTINGS_KEY
    storage_bucket: str = "scrapes"
    output_dir: Optional[str] = None
    provider_base_url: str = "https://dahab.app.outscraper.com"
    verifier_url: str = "https://api.millionverifier.com/api/v3/"
    fetch_timeout_seconds: float = 5.0
    fetch_max_attempts: int = 3
    verify_timeout_seconds: float = 10.0
    verify_delay_seconds: float = 0.3
    verify_calls_per_minute: Optional[float] = None
    stale_after_minutes: int = 30
    poll_interval_seconds: float = 60.0
    area_codes_path: Optional[str] = None
    targetron_api_key: Optional[str] = None
    million_verifier_api_key: Optional[str] = None

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> "WorkerConfig":
        """Build a config from a loaded file, falling back to environment variables."""

        env = os.environ if env is None else env
        supabase = dict(config.get("supabase") or {})
        provider = dict(config.get("provider") or {})
        verifier = dict(config.get("verifier") or {})
        worker = dict(config.get("worker") or {})

        try:
            return cls(
                supabase_url=supabase.get("url") or env.get("SUPABASE_URL"),
                supabase_key=supabase.get("service_role_key") or env.get("SUPABASE_SERVICE_ROLE_KEY"),
                queue_table=supabase.get("queue_table", cls.queue_table),
                settings_table=supabase.get("settings_table", cls.settings_table),
                settings_key=supabase.get("settings_key", cls.settings_key),
                storage_bucket=supabase.get("bucket", cls.storage_bucket),
                output_dir=worker.get("output_dir"),
                provider_base_url=provider.get("base_url", cls.provider_base_url),
                fetch_timeout_seconds=float(provider.get("timeout_seconds", cls.fetch_timeout_seconds)),
                fetch_max_attempts=int(provider.get("max_attempts", cls.fetch_max_attempts)),
                targetron_api_key=provider.get("api_key"),
                verifier_url=verifier.get("url", cls.verifier_url),
                verify_timeout_seconds=float(verifier.get("timeout_seconds", cls.verify_timeout_seconds)),
                verify_delay_seconds=float(verifier.get("delay_seconds", cls.verify_delay_seconds)),
                verify_calls_per_minute=_optional_float(verifier.get("calls_per_minute")),
                million_verifier_api_key=verifier.get("api_key"),
                stale_after_minutes=int(worker.get("stale_after_minutes", cls.stale_after_minutes)),
                poll_interval_seconds=float(worker.get("poll_interval_seconds", cls.poll_interval_seconds)),
                area_codes_path=worker.get("area_codes_path"),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid worker configuration: {exc}") from exc

    def require_supabase(self) -> tuple[str, str]:
        if not self.supabase_url:
            raise ConfigurationError("SUPABASE_URL not configured")
        if not self.supabase_key:
            raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY not configured")
        return self.supabase_url, self.supabase_key


# --- Provider API keys ---

@dataclass(frozen=True)
class ProviderKeys:
    """API keys for the lead provider and the email verification provider."""

    targetron_api_key: str
    million_verifier_api_key: str

    @classmethod
    def from_settings(cls, value: Mapping[str, Any]) -> "ProviderKeys":
        targetron = str(value.get("targetronApiKey") or "").strip()
        if not targetron:
            raise ConfigurationError("Missing Targetron API key in settings")
        verifier = str(value.get("millionVerifierApiKey") or value.get("millionApiKey") or "").strip()
        if not verifier:
            raise ConfigurationError("Missing Million Verifier API key in settings")
        return cls(targetron_api_key=targetron, million_verifier_api_key=verifier)


def mask_key(key: str) -> str:
    return f"{key[:6]}..." if key else ""


class SettingsProvider(Protocol):
    """Source of the provider API keys."""

    def get_provider_keys(self) -> ProviderKeys:  # pragma: no cover - runtime protocol
        """Return the current provider API keys or raise :class:`ConfigurationError`."""


class StaticSettingsProvider:
    """Settings provider backed by an in-memory mapping (config file or tests)."""

    def __init__(self, value: Mapping[str, Any]) -> None:
        self._value = dict(value)

    def get_provider_keys(self) -> ProviderKeys:
        return ProviderKeys.from_settings(self._value)


class SupabaseSettingsProvider:
    """Reads the ``scraperSettings`` row from the Supabase settings table."""

    def __init__(self, client, *, table: str = "settings", key: str = SCRAPER_SETTINGS_KEY) -> None:
        self._client = client
        self._table = table
        self._key = key

    def get_provider_keys(self) -> ProviderKeys:
        try:
            response = self._client.table(self._table).select("value").eq("key", self._key).limit(1).execute()
        except Exception as exc:
            raise ConfigurationError("Failed to fetch scraper settings") from exc

        rows = response.data or []
        value = rows[0].get("value") if rows else None
        if not value:
            raise ConfigurationError("Failed to fetch scraper settings")
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError as exc:
                raise ConfigurationError("Scraper settings are not valid JSON") from exc

        keys = ProviderKeys.from_settings(value)
        LOGGER.info("Using lead provider API key %s", mask_key(keys.targetron_api_key))
        return keys


def build_settings_provider(config: WorkerConfig, client=None) -> SettingsProvider:
    """Prefer keys from the config file; otherwise read them from Supabase."""

    if config.targetron_api_key or config.million_verifier_api_key:
        return StaticSettingsProvider(
            {
                "targetronApiKey": config.targetron_api_key,
                "millionVerifierApiKey": config.million_verifier_api_key,
            }
        )
    if client is None:
        raise ConfigurationError("No API keys configured and no Supabase client available to read settings")
    return SupabaseSettingsProvider(client, table=config.settings_table, key=config.settings_key)
