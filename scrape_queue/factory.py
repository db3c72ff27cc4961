"""Factory helpers for wiring the queue processor from configuration."""
from __future__ import annotations

from datetime import timedelta
from typing import Optional

import requests

from .area_codes import AreaCodeMap
from .claimer import JobClaimer
from .config import ConfigurationError, ProviderKeys, WorkerConfig, build_settings_provider
from .fetcher import DataFetcher
from .orchestrator import ScrapeJobProcessor
from .persistence import ResultPersister
from .rate_limit import DelayPolicy, FixedDelay, Pacer, RateLimiter
from .storage import LocalDirectorySink, StorageSink, SupabaseStorageSink
from .store import JobQueueStore, SupabaseJobStore, create_supabase_client
from .verification import EmailVerifier, MillionVerifierClient


def build_verifier(config: WorkerConfig, api_key: str, session: Optional[requests.Session] = None) -> EmailVerifier:
    client = MillionVerifierClient(
        api_key,
        session=session,
        url=config.verifier_url,
        timeout_seconds=config.verify_timeout_seconds,
    )
    return EmailVerifier(client, pacer=build_pacer(config))


def build_pacer(config: WorkerConfig) -> Pacer:
    """A calls-per-minute cap replaces the fixed pause when one is configured."""

    if config.verify_calls_per_minute:
        return RateLimiter(config.verify_calls_per_minute)
    return FixedDelay(DelayPolicy(delay_seconds=config.verify_delay_seconds))


def _area_codes_loader(config: WorkerConfig):
    if not config.area_codes_path:
        return AreaCodeMap
    path = config.area_codes_path
    return lambda: AreaCodeMap.load(path)


def build_processor(
    config: WorkerConfig,
    *,
    client=None,
    store: Optional[JobQueueStore] = None,
    sink: Optional[StorageSink] = None,
    session: Optional[requests.Session] = None,
) -> ScrapeJobProcessor:
    """Instantiate the processor and its collaborators from ``config``.

    A Supabase client is created only when the store, the sink or the
    settings lookup needs one.
    """

    needs_client = store is None or (sink is None and not config.output_dir) or not (
        config.targetron_api_key or config.million_verifier_api_key
    )
    if client is None and needs_client:
        url, key = config.require_supabase()
        client = create_supabase_client(url, key)

    if store is None:
        store = SupabaseJobStore(client, table=config.queue_table)
    if sink is None:
        sink = LocalDirectorySink(config.output_dir) if config.output_dir else SupabaseStorageSink(
            client, bucket=config.storage_bucket
        )
    if config.fetch_max_attempts < 1:
        raise ConfigurationError("provider.max_attempts must be at least 1")

    session = session or requests.Session()
    fetcher = DataFetcher(
        session=session,
        base_url=config.provider_base_url,
        timeout_seconds=config.fetch_timeout_seconds,
        max_attempts=config.fetch_max_attempts,
    )

    def verifier_factory(keys: ProviderKeys) -> EmailVerifier:
        return build_verifier(config, keys.million_verifier_api_key, session=session)

    return ScrapeJobProcessor(
        store=store,
        settings=build_settings_provider(config, client),
        fetcher=fetcher,
        verifier_factory=verifier_factory,
        persister=ResultPersister(store, sink),
        claimer=JobClaimer(store, stale_after=timedelta(minutes=config.stale_after_minutes)),
        area_codes_loader=_area_codes_loader(config),
    )
