"""Тесты fingerprint: стабильность ключа и версия pipeline в хэше."""

from __future__ import annotations

import hashlib

from errshape.normalization import NormalizationPipeline
from errshape.normalization.patterns import PatternOverride
from errshape.utils.fingerprint import compute_fingerprint, fingerprint_normalized


def test_fingerprint_is_sha256_of_versioned_form() -> None:
    expected = hashlib.sha256(b"v2:timeout after {NUMBER} ms").hexdigest()

    assert compute_fingerprint("timeout after 3000 ms") == expected


def test_messages_differing_only_in_volatile_data_share_fingerprint() -> None:
    first = compute_fingerprint("request 6f2f2bac-ae63-4d32-83e7-d07ce14ac537 failed at 10:12:13")
    second = compute_fingerprint("request 0b7c4f2e-1111-4a2b-9c3d-aabbccddeeff failed at 23:59:01")

    assert first == second


def test_different_shapes_have_different_fingerprints() -> None:
    assert compute_fingerprint("disk full") != compute_fingerprint("disk quota exceeded")


def test_empty_message_has_valid_fingerprint() -> None:
    fp = compute_fingerprint("")

    assert fp == hashlib.sha256(b"v2:").hexdigest()
    assert len(fp) == 64


def test_version_tag_is_part_of_fingerprint() -> None:
    assert fingerprint_normalized("x", "v1") != fingerprint_normalized("x", "v2")


def test_customized_pipeline_does_not_collide_with_default() -> None:
    custom = NormalizationPipeline(overrides={"number": PatternOverride(pattern=r"\b\d+\b")})

    # форма совпадает, а fingerprint — нет
    assert custom.normalize("retry 3") == "retry {NUMBER}"
    assert compute_fingerprint("retry 3", custom) != compute_fingerprint("retry 3")
