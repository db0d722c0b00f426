"""AI metadata generation for uploaded images."""

from .service import ImageAnalysisService

__all__ = ["ImageAnalysisService"]
