"""Background warm-up for the NLI scoring endpoint.

Dedicated inference endpoints scale to zero when idle and answer 503 while
the model loads. The warmer sends one probe evaluation at startup and then
every ``interval_seconds`` so the first analysis after a quiet period does
not burn its retry budget on a cold endpoint.
"""

import asyncio

import structlog

from reqcheck.engines.contradiction.scoring_client import ScoringClient

logger = structlog.get_logger(__name__)


class EndpointWarmer:
    """Periodically probe the scoring endpoint to keep it loaded.

    Example:
        >>> warmer = EndpointWarmer(client, interval_seconds=3600)
        >>> await warmer.start()
        >>> # ... probes run in the background ...
        >>> await warmer.stop()
    """

    def __init__(self, client: ScoringClient, interval_seconds: float) -> None:
        self.client = client
        self.interval_seconds = interval_seconds
        self.probes_sent = 0
        self.last_available: bool | None = None
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start probing in the background; the first probe is sent immediately."""
        if self._running:
            logger.debug("nli_warmup_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._warm_loop())
        logger.info("nli_warmup_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Cancel the probe loop and wait for it to exit."""
        if not self._running:
            return

        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("nli_warmup_stopped", probes_sent=self.probes_sent)

    async def warm_once(self) -> bool:
        """Send one probe evaluation and record whether the endpoint answered."""
        available = await self.client.is_available()
        self.probes_sent += 1
        self.last_available = available

        if available:
            logger.info("nli_endpoint_warm", probes_sent=self.probes_sent)
        else:
            logger.warning("nli_endpoint_warmup_failed", probes_sent=self.probes_sent)
        return available

    async def _warm_loop(self) -> None:
        while self._running:
            try:
                await self.warm_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("nli_warmup_error", error=str(e))

            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
