"""Metadata provider registry."""

from .base import MetadataProvider
from .http import HTTPMetadataProvider
from .openai import OpenAIVisionProvider
from .stub import StubMetadataProvider

__all__ = [
    "MetadataProvider",
    "HTTPMetadataProvider",
    "OpenAIVisionProvider",
    "StubMetadataProvider",
]
