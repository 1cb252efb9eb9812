"""
Source registry for the search service.

Tracks one listing provider per source together with its lifecycle state,
and reports service health from those states.
"""

import asyncio
import logging
import os
import resource
import time
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from fliplab.models import HealthReport, MemoryUsage, ScraperState, derive_health_status
from fliplab.service.providers import ListingProvider
from fliplab.sources import MarketplaceSource, get_source

logger = logging.getLogger(__name__)


def resident_memory_bytes(statm_path: str = "/proc/self/statm") -> int:
    """Current resident set size of this process.

    Read from ``statm`` where procfs exists; elsewhere falls back to the
    peak RSS from ``getrusage``.
    """
    try:
        with open(statm_path) as statm:
            resident_pages = int(statm.read().split()[1])
        return resident_pages * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError):
        # ru_maxrss is the peak, reported in kilobytes on Linux
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss * 1024


def memory_usage() -> MemoryUsage:
    """Resident memory of this process in MB, against physical memory."""
    used = resident_memory_bytes() // (1024 * 1024)
    try:
        total = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES") // (1024 * 1024)
    except (ValueError, OSError):
        total = 0
    percentage = round(used / total * 100) if total else 0
    return MemoryUsage(used=int(used), total=int(total), percentage=int(percentage))


class SourceRegistry:
    """
    Providers and states for every source the service serves.

    Attributes:
        providers: Listing provider per source id, in dispatch order
        states: Current state per source id
        last_checks: When each source's state last changed
    """

    def __init__(self, providers: Mapping[str, ListingProvider]):
        self.providers: Dict[str, ListingProvider] = dict(providers)
        self.states: Dict[str, ScraperState] = {
            source_id: ScraperState.INACTIVE for source_id in self.providers
        }
        self.last_checks: Dict[str, datetime] = {
            source_id: datetime.now(timezone.utc) for source_id in self.providers
        }
        self.started_at = time.monotonic()

    @property
    def sources(self) -> Dict[str, MarketplaceSource]:
        return {source_id: provider.source for source_id, provider in self.providers.items()}

    def resolve(self, key: str) -> Optional[MarketplaceSource]:
        """Source for a source id or route alias, if this registry serves it."""
        return get_source(key, self.sources)

    def provider_for(self, source: MarketplaceSource) -> ListingProvider:
        return self.providers[source.source_id]

    def is_active(self, source_id: str) -> bool:
        return self.states.get(source_id) == ScraperState.ACTIVE

    def set_state(self, source_id: str, state: ScraperState) -> None:
        self.states[source_id] = state
        self.last_checks[source_id] = datetime.now(timezone.utc)

    async def initialize(self) -> None:
        """Start every provider. A provider that fails to start is marked ``error``."""
        logger.info(f"Initializing {len(self.providers)} sources...")
        outcomes = await asyncio.gather(
            *(provider.initialize() for provider in self.providers.values()),
            return_exceptions=True,
        )
        for source_id, outcome in zip(self.providers, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"Failed to initialize {source_id}: {outcome}")
                self.set_state(source_id, ScraperState.ERROR)
            else:
                self.set_state(source_id, ScraperState.ACTIVE)
        logger.info(f"Source states: {self._state_summary()}")

    async def cleanup(self) -> None:
        """Stop every provider and mark it inactive."""
        logger.info("Cleaning up sources...")
        for source_id, provider in self.providers.items():
            try:
                await provider.cleanup()
            except Exception as e:
                logger.error(f"Error cleaning up {source_id}: {e}")
            self.set_state(source_id, ScraperState.INACTIVE)

    def health(self) -> HealthReport:
        scrapers = dict(self.states)
        return HealthReport(
            status=derive_health_status(scrapers),
            scrapers=scrapers,
            timestamp=datetime.now(timezone.utc),
            uptime=int((time.monotonic() - self.started_at) * 1000),
            memory=memory_usage(),
        )

    def platform_status(self) -> Dict[str, dict]:
        return {
            source_id: {
                "name": provider.source.name,
                "status": self.states[source_id].value,
                "lastCheck": self.last_checks[source_id].isoformat(),
            }
            for source_id, provider in self.providers.items()
        }

    def _state_summary(self) -> str:
        return ", ".join(f"{sid}={state.value}" for sid, state in self.states.items())
