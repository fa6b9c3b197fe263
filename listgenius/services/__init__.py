"""
Service wiring
One container per application instance, built at startup
"""
import asyncio
import logging
from typing import Optional

from ..config import (
    DATABASE_URL,
    JOB_RETENTION_SECONDS,
    JOB_SWEEP_INTERVAL_SECONDS,
    MAX_CONCURRENT_JOBS,
)
from ..db import create_engine, create_session_factory, init_models
from .bulk_processor import BulkJobRunner
from .generations import GenerationRepository
from .generator import ListingGenerator
from .identity import IdentityClient
from .job_store import InMemoryJobStore
from .quota import QuotaGate

logger = logging.getLogger(__name__)


class Services:
    """Holds the long-lived collaborators the routers depend on"""

    def __init__(
        self,
        database_url: str = DATABASE_URL,
        identity=None,
        generator=None,
        sweep_interval: float = JOB_SWEEP_INTERVAL_SECONDS,
    ):
        self.engine = create_engine(database_url)
        self.sessions = create_session_factory(self.engine)
        self.identity = identity or IdentityClient()
        self.generator = generator or ListingGenerator()
        self.quota = QuotaGate(self.sessions, self.identity)
        self.generations = GenerationRepository(self.sessions)
        self.jobs = InMemoryJobStore(retention_seconds=JOB_RETENTION_SECONDS)
        self.runner = BulkJobRunner(
            self.jobs,
            self.quota,
            self.generator,
            self.generations,
            max_concurrent_jobs=MAX_CONCURRENT_JOBS,
        )
        self.sweep_interval = sweep_interval
        self._sweeper: Optional[asyncio.Task] = None

    async def startup(self) -> None:
        await init_models(self.engine)
        self._sweeper = asyncio.create_task(self.runner.sweep_forever(self.sweep_interval))
        logger.info("Services started")

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
        await self.runner.shutdown()
        await self.engine.dispose()
        logger.info("Services stopped")


def build_services() -> Services:
    return Services()


__all__ = [
    "Services",
    "build_services",
    "BulkJobRunner",
    "GenerationRepository",
    "IdentityClient",
    "InMemoryJobStore",
    "ListingGenerator",
    "QuotaGate",
]
