"""Сервис группировки сообщений об ошибках по нормализованной форме.

Алгоритм:
1. Каждое сообщение нормализуется и получает fingerprint.
2. Точная группировка: одинаковый fingerprint → одна корзина.
3. Опционально (``similarity_threshold < 1.0``) близкие формы сливаются:
   TF-IDF + cosine similarity по нормализованным формам корзин,
   agglomerative clustering (complete linkage) по distance = 1 - similarity.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy.cluster.hierarchy import fcluster, linkage
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from errshape.models.grouping import GroupingReport, MessageGroup, NormalizedMessage
from errshape.normalization.pipeline import DEFAULT_PIPELINE, NormalizationPipeline
from errshape.utils.fingerprint import fingerprint_normalized

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GroupingConfig:
    """Параметры группировки."""

    similarity_threshold: float = 1.0

    tfidf_max_features: int = 1000
    tfidf_ngram_range: tuple[int, int] = (1, 2)

    max_label_length: int = 120

    @property
    def distance_threshold(self) -> float:
        """Перевод similarity_threshold в distance_threshold для scipy."""
        return 1.0 - self.similarity_threshold

    @property
    def merge_enabled(self) -> bool:
        return self.similarity_threshold < 1.0


@dataclass
class _Bucket:
    """Сообщения с одинаковым fingerprint."""

    fingerprint: str
    normalized: str
    indices: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# MessageGroupingService
# ---------------------------------------------------------------------------

class MessageGroupingService:
    """Группирует сообщения, различающиеся только волатильными значениями."""

    def __init__(
        self,
        config: GroupingConfig | None = None,
        pipeline: NormalizationPipeline | None = None,
    ) -> None:
        self._config = config or GroupingConfig()
        self._pipeline = pipeline or DEFAULT_PIPELINE

    def normalize_all(self, messages: Sequence[str]) -> list[NormalizedMessage]:
        """Нормализовать пачку сообщений с fingerprint'ами."""
        results: list[NormalizedMessage] = []
        for message in messages:
            normalized = self._pipeline.normalize(message)
            results.append(
                NormalizedMessage(
                    message=message,
                    normalized=normalized,
                    fingerprint=fingerprint_normalized(
                        normalized, self._pipeline.version_tag,
                    ),
                )
            )
        return results

    def group_messages(self, messages: Sequence[str]) -> GroupingReport:
        """Сгруппировать сообщения и вернуть ``GroupingReport``."""
        version = self._pipeline.version_tag
        if not messages:
            return GroupingReport(pipeline_version=version, total_messages=0, group_count=0)

        # 1. Точная группировка по fingerprint (порядок первого появления)
        buckets: dict[str, _Bucket] = {}
        for idx, item in enumerate(self.normalize_all(messages)):
            bucket = buckets.get(item.fingerprint)
            if bucket is None:
                bucket = _Bucket(fingerprint=item.fingerprint, normalized=item.normalized)
                buckets[item.fingerprint] = bucket
            bucket.indices.append(idx)

        bucket_list = list(buckets.values())

        # 2. Слияние близких форм
        merged: dict[int, list[int]] = {}  # label -> [bucket indices]
        mergeable = [i for i, b in enumerate(bucket_list) if b.normalized.strip()]

        if self._config.merge_enabled and len(mergeable) >= 2:
            labels = self._cluster_shapes([bucket_list[i].normalized for i in mergeable])
            for bucket_idx, label in zip(mergeable, labels):
                merged.setdefault(label, []).append(bucket_idx)
            mergeable_set = set(mergeable)
            next_label = max(merged) + 1 if merged else 0
            for i in range(len(bucket_list)):
                if i not in mergeable_set:
                    merged[next_label] = [i]
                    next_label += 1
        else:
            merged = {i: [i] for i in range(len(bucket_list))}

        # 3. Конвертация в выходные модели
        groups = [
            self._build_group([bucket_list[i] for i in bucket_indices], messages)
            for bucket_indices in merged.values()
        ]
        groups.sort(key=lambda g: (-g.member_count, g.group_id))

        singletons = sum(1 for g in groups if g.member_count == 1)

        logger.info(
            "Сгруппировано %d сообщений в %d групп (%d одиночных)",
            len(messages),
            len(groups),
            singletons,
        )

        return GroupingReport(
            pipeline_version=version,
            total_messages=len(messages),
            group_count=len(groups),
            groups=groups,
            singleton_count=singletons,
        )

    # --- Clustering ---

    def _cluster_shapes(self, documents: list[str]) -> list[int]:
        """TF-IDF + agglomerative clustering; одна метка на документ."""
        n = len(documents)
        sim_matrix = self._pairwise_similarity(documents)

        np.clip(sim_matrix, 0.0, 1.0, out=sim_matrix)
        dist_matrix = 1.0 - sim_matrix
        condensed = dist_matrix[np.triu_indices(n, k=1)]

        linkage_matrix = linkage(condensed, method="complete")
        labels = fcluster(
            linkage_matrix,
            t=self._config.distance_threshold,
            criterion="distance",
        )
        return labels.tolist()

    def _pairwise_similarity(self, documents: list[str]) -> np.ndarray:
        """Cosine similarity matrix по нормализованным формам.

        Если словарь пуст (формы из одних плейсхолдеров и однобуквенных
        токенов) — единичная матрица, т.е. без слияния.
        """
        n = len(documents)
        vectorizer = TfidfVectorizer(
            max_features=self._config.tfidf_max_features,
            ngram_range=self._config.tfidf_ngram_range,
            token_pattern=r"(?u)\b\w\w+\b",
            lowercase=True,
        )
        try:
            tfidf_matrix = vectorizer.fit_transform(documents)
        except ValueError:
            return np.eye(n, dtype=np.float64)

        sim_matrix = cosine_similarity(tfidf_matrix)
        np.fill_diagonal(sim_matrix, 1.0)

        if logger.isEnabledFor(logging.DEBUG) and n >= 2:
            values = sim_matrix[np.triu_indices(n, k=1)]
            logger.debug(
                "Similarity stats: min=%.4f avg=%.4f max=%.4f",
                float(values.min()),
                float(values.mean()),
                float(values.max()),
            )
        return sim_matrix

    # --- Group building ---

    def _build_group(
        self,
        buckets: list[_Bucket],
        messages: Sequence[str],
    ) -> MessageGroup:
        """Создать MessageGroup из одной или нескольких корзин."""
        # Представитель: самая частая форма, при равенстве — встреченная раньше
        representative = max(buckets, key=lambda b: (len(b.indices), -b.indices[0]))

        member_indices = sorted(i for b in buckets for i in b.indices)
        fingerprints = sorted(b.fingerprint for b in buckets)

        return MessageGroup(
            group_id=self._generate_group_id(fingerprints),
            label=self._generate_label(representative.normalized),
            normalized=representative.normalized,
            fingerprints=fingerprints,
            member_indices=member_indices,
            member_count=len(member_indices),
            example_message=messages[representative.indices[0]],
        )

    def _generate_label(self, normalized: str) -> str:
        if not normalized:
            return "(пустая форма)"
        if len(normalized) > self._config.max_label_length:
            return normalized[: self._config.max_label_length - 3] + "..."
        return normalized

    @staticmethod
    def _generate_group_id(fingerprints: list[str]) -> str:
        """Детерминированный ID группы: SHA-256 по отсортированным fingerprint'ам."""
        raw = "\n".join(sorted(fingerprints))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
