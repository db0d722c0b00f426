"""Stub metadata provider with deterministic results."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from shared.models import MetadataRequest, MetadataResult

from .base import MetadataProvider

_WORD_SPLIT = re.compile(r"[^a-z0-9]+")
_NOISE = {"img", "image", "photo", "dsc", "jpg", "jpeg", "png", "webp", "heic", "thumb", "thumbnail"}


class StubMetadataProvider(MetadataProvider):
    """Derive metadata from the image name without calling external services."""

    name = "stub"

    async def generate(self, request: MetadataRequest) -> MetadataResult:
        path = urlparse(request.image_url).path or request.image_url
        stem = PurePosixPath(path).stem.lower()
        words = [
            word
            for word in _WORD_SPLIT.split(stem)
            if len(word) > 2 and not word.isdigit() and word not in _NOISE
        ]

        keywords: list[str] = []
        for word in words:
            if word not in keywords:
                keywords.append(word)

        subject = " ".join(keywords) if keywords else "image"
        description = f"Stock photo of {subject}"
        if request.prompt:
            description = f"{description}. {request.prompt.strip()}"

        return MetadataResult(
            description=description[: request.max_tokens * 4],
            keywords=keywords,
            title=subject.title(),
        )
