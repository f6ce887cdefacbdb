"""Per-segment clip generation and transition generation capabilities.

The pipeline only sees the abstract capabilities below. The remote
implementations trigger the external image-to-video service over HTTP and
then poll the segment record until the service marks it terminal.

Usage:
    generator = RemoteSegmentGenerator(repository)
    outcome = await generator.dispatch(segment)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from clipreel.config import settings
from clipreel.db.repository import JobRepository
from clipreel.errors import SegmentGenerationError
from clipreel.schemas.job import JobRecord, SegmentOutcome, SegmentRecord, SegmentStatus

logger = logging.getLogger(__name__)

_TERMINAL_SEGMENT_STATES = {SegmentStatus.COMPLETED, SegmentStatus.FAILED}


class SegmentGenerator(ABC):
    """Turns one segment's still image(s) into a clip."""

    @abstractmethod
    async def dispatch(self, segment: SegmentRecord) -> SegmentOutcome:
        """Run generation for a segment and return its terminal outcome.

        Raising instead of returning means the generation runtime itself
        failed for this unit of work; callers count it as a failed segment.
        """
        ...


class TransitionGenerator(ABC):
    """Generates a bridging clip from one segment into the next."""

    @abstractmethod
    async def dispatch(
        self, segment: SegmentRecord, next_segment: SegmentRecord, job: JobRecord
    ) -> bool:
        """Return True once the segment has a transition clip URL."""
        ...


def _is_retriable(exc: BaseException) -> bool:
    """Return True only for transient errors worth retrying (429, 5xx, network)."""
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return isinstance(exc, httpx.TransportError)


class GenerationServiceClient:
    """Async client for the external generation service."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None):
        self.base_url = (base_url or settings.generation.service_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.generation.api_key
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=httpx.Timeout(settings.generation.request_timeout_seconds, connect=30.0),
            )
        return self._client

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=2, min=2, max=60) + wait_random(0, 2),
        retry=retry_if_exception(_is_retriable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def trigger(self, route: str, payload: dict) -> dict:
        response = await self.client.post(route, json=payload)
        response.raise_for_status()
        return response.json() if response.content else {}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class _PollingGenerator:
    def __init__(
        self,
        repository: JobRepository,
        client: Optional[GenerationServiceClient] = None,
        poll_interval: Optional[float] = None,
        poll_max: Optional[int] = None,
    ):
        self.repository = repository
        self.client = client or GenerationServiceClient()
        self.poll_interval = (
            settings.generation.poll_interval_seconds if poll_interval is None else poll_interval
        )
        self.poll_max = self.default_poll_max() if poll_max is None else poll_max

    def default_poll_max(self) -> int:
        return settings.generation.poll_max

    async def _poll(self, segment_id: str, done) -> SegmentRecord:
        for _ in range(self.poll_max):
            current = await self.repository.get_segment(segment_id)
            if current is None:
                raise SegmentGenerationError(f"Segment {segment_id} disappeared while generating")
            if done(current):
                return current
            await asyncio.sleep(self.poll_interval)
        raise SegmentGenerationError(
            f"Segment {segment_id} not finished after {self.poll_max} polls"
        )


class RemoteSegmentGenerator(_PollingGenerator, SegmentGenerator):
    async def dispatch(self, segment: SegmentRecord) -> SegmentOutcome:
        logger.info(f"Segment {segment.id}: triggering clip generation")
        await self.client.trigger(
            f"/segments/{segment.id}/generate",
            {
                "clip_id": segment.id,
                "source_image_url": segment.source_image_url,
                "tail_image_url": segment.tail_image_url,
            },
        )

        final = await self._poll(segment.id, lambda s: s.status in _TERMINAL_SEGMENT_STATES)
        return SegmentOutcome(
            segment_id=final.id,
            status=final.status,
            clip_url=final.clip_url,
            error=final.error_message,
        )


class RemoteTransitionGenerator(_PollingGenerator, TransitionGenerator):
    def default_poll_max(self) -> int:
        return settings.generation.transition_poll_max

    async def dispatch(
        self, segment: SegmentRecord, next_segment: SegmentRecord, job: JobRecord
    ) -> bool:
        logger.info(f"Segment {segment.id}: triggering transition into {next_segment.id}")
        response = await self.client.trigger(
            f"/segments/{segment.id}/transition",
            {
                "clip_id": segment.id,
                "from_image_url": segment.tail_image_url,
                "to_image_url": next_segment.source_image_url,
                "video_project_id": job.id,
                "workspace_id": job.workspace_id,
                "aspect_ratio": job.aspect_ratio,
            },
        )
        if response.get("status") == "failed":
            raise SegmentGenerationError(
                f"Transition for segment {segment.id} failed: {response.get('error', 'no reason given')}"
            )

        await self._poll(segment.id, lambda s: bool(s.transition_clip_url))
        return True
