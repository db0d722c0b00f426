"""Base classes for metadata generation providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from shared.models import MetadataRequest, MetadataResult


class MetadataProvider(ABC):
    """Abstract provider that turns an image into a description and keywords."""

    name: str = "base"

    @abstractmethod
    async def generate(self, request: MetadataRequest) -> MetadataResult:
        """Return generated metadata or raise ProcessingError."""
