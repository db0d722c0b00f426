"""Metadata generation service: the processing call used by the queue."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Any

from shared.cache import Cache
from shared.models import MetadataRequest, MetadataResult
from shared.utils import config as service_config, generate_hash, setup_logging

from .drivers import HTTPMetadataProvider, MetadataProvider, OpenAIVisionProvider, StubMetadataProvider


class ImageAnalysisService:
    """Generate titles, descriptions and keywords for images through a provider, with caching.

    Provider errors propagate to the caller so the queue can apply its retry policy.
    """

    def __init__(self, provider: MetadataProvider | None = None, cache_ttl: float | None = None) -> None:
        self.logger = setup_logging("image-analysis-service", service_config.get("log_level", "INFO"))
        self.cache_ttl = float(
            service_config.get("metadata_cache_ttl", 3600) if cache_ttl is None else cache_ttl
        )
        self.cache = Cache(default_ttl=self.cache_ttl)
        self.provider = provider or self._load_provider(service_config.get("metadata_provider", "stub"))
        self.job_states: dict[int, dict[str, Any]] = {}

    def _load_provider(self, provider_name: str) -> MetadataProvider:
        providers: dict[str, type[MetadataProvider]] = {
            "stub": StubMetadataProvider,
            "http": HTTPMetadataProvider,
            "openai": OpenAIVisionProvider,
        }

        provider_cls = providers.get((provider_name or "").lower())
        if provider_cls is None:
            self.logger.warning("Unknown metadata provider '%s', falling back to stub", provider_name)
            provider_cls = StubMetadataProvider
        try:
            return provider_cls()
        except ValueError as exc:
            self.logger.warning("Metadata provider '%s' unavailable (%s); using stub", provider_name, exc)
            return StubMetadataProvider()

    async def generate(self, request: MetadataRequest) -> MetadataResult:
        """Return metadata for one image, serving repeated identical requests from cache."""
        cache_key = self._build_cache_key(request)
        cached = self.cache.get(cache_key)
        if cached:
            self.logger.debug("Metadata cache hit for file %s", request.file_id)
            return MetadataResult(**cached)

        state = {
            "file_id": request.file_id,
            "provider": self.provider.name,
            "status": "processing",
            "started_at": time.time(),
        }
        self.job_states[request.file_id] = state

        try:
            result = await self.provider.generate(request)
        except Exception as exc:
            state.update({"status": "error", "error": str(exc), "completed_at": time.time()})
            self.logger.warning("Metadata generation failed for file %s: %s", request.file_id, exc)
            raise

        state.update(
            {
                "status": "completed",
                "completed_at": time.time(),
                "keywords": len(result.keywords),
            }
        )
        self.cache.set(cache_key, result.model_dump(), ttl=self.cache_ttl)
        return result

    def purge_cached_result(self, request: MetadataRequest) -> None:
        self.cache.delete(self._build_cache_key(request))

    def reset(self) -> None:
        """Clear cached results and job states (used in tests)."""
        self.cache.clear()
        self.job_states.clear()

    def get_job_status(self, file_id: int) -> dict[str, Any] | None:
        job_state = self.job_states.get(file_id)
        if not job_state:
            return None

        return {
            **job_state,
            "started_at": self._format_timestamp(job_state.get("started_at")),
            "completed_at": self._format_timestamp(job_state.get("completed_at")),
        }

    def _build_cache_key(self, request: MetadataRequest) -> str:
        payload = (
            f"{self.provider.name}:{request.file_id}:{request.image_url}:{request.prompt}:"
            f"{request.max_tokens}:{request.temperature}"
        )
        return f"metadata:image:{generate_hash(payload)}"

    @staticmethod
    def _format_timestamp(timestamp: float | None) -> str | None:
        if not timestamp:
            return None
        return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()
