"""Metadata provider backed by the application's processing endpoint."""

from __future__ import annotations

import aiohttp

from shared.errors import ProcessingError
from shared.http_client import AsyncHTTPClient
from shared.models import MetadataRequest, MetadataResult
from shared.utils import config as service_config

from .base import MetadataProvider


class HTTPMetadataProvider(MetadataProvider):
    """POST the request to ``METADATA_API_URL`` and read ``{description, keywords}`` back."""

    name = "http"

    def __init__(self, endpoint: str | None = None, timeout: float | None = None) -> None:
        self.endpoint = endpoint or service_config.get("metadata_api_url")
        if not self.endpoint:
            raise ValueError("Metadata endpoint not configured. Set METADATA_API_URL environment variable.")
        self.timeout = timeout or service_config.get("processing_timeout", 120) or 120

    async def generate(self, request: MetadataRequest) -> MetadataResult:
        try:
            async with AsyncHTTPClient(timeout=self.timeout) as client:
                payload = await client.post(self.endpoint, data=request.to_payload())
        except aiohttp.ClientResponseError as exc:
            raise ProcessingError(
                f"Processing failed: {exc.status} {exc.message}", file_id=request.file_id
            ) from exc
        except aiohttp.ClientError as exc:
            raise ProcessingError(f"Processing request failed: {exc}", file_id=request.file_id) from exc

        if not isinstance(payload, dict) or not payload.get("description"):
            raise ProcessingError("Processing response did not include a description", file_id=request.file_id)

        keywords = payload.get("keywords") or []
        if isinstance(keywords, str):
            keywords = [part.strip() for part in keywords.split(",") if part.strip()]

        return MetadataResult(
            description=str(payload["description"]),
            keywords=[str(keyword) for keyword in keywords if keyword],
            title=payload.get("title"),
            category=payload.get("category"),
        )
