"""Вычисление fingerprint сообщения — ключа дедупликации и группировки."""

from __future__ import annotations

import hashlib

from errshape.normalization.pipeline import DEFAULT_PIPELINE, NormalizationPipeline


def fingerprint_normalized(normalized: str, version_tag: str) -> str:
    """SHA-256 hex digest уже нормализованной формы.

    Метка версии pipeline входит в хэш: ``sha256(f"{version_tag}:{normalized}")``.
    После смены порядка детекторов или встроенных грамматик (инкремент
    ``PIPELINE_VERSION``) старые fingerprint'ы тихо перестают совпадать —
    новые группы не смешиваются со старыми.
    """
    payload = f"{version_tag}:{normalized}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def compute_fingerprint(
    message: str,
    pipeline: NormalizationPipeline | None = None,
) -> str:
    """Нормализовать сообщение и вернуть его fingerprint.

    Пустое сообщение даёт fingerprint пустой формы — это валидный ключ.

    Returns:
        64-символьная hex-строка (SHA-256).
    """
    pipeline = pipeline or DEFAULT_PIPELINE
    return fingerprint_normalized(pipeline.normalize(message), pipeline.version_tag)
