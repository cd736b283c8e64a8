"""Движок нормализации сообщений об ошибках."""

from errshape.normalization.pipeline import (
    DEFAULT_PIPELINE,
    NormalizationPipeline,
    normalize_message,
)
from errshape.normalization.vocabulary import Placeholder

__all__ = [
    "DEFAULT_PIPELINE",
    "NormalizationPipeline",
    "Placeholder",
    "normalize_message",
]
