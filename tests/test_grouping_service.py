"""Тесты группировки сообщений по нормализованной форме."""

from __future__ import annotations

import hashlib

from errshape.services.grouping_service import GroupingConfig, MessageGroupingService
from errshape.utils.fingerprint import compute_fingerprint


def test_empty_input_returns_empty_report() -> None:
    report = MessageGroupingService().group_messages([])

    assert report.total_messages == 0
    assert report.group_count == 0
    assert report.groups == []
    assert report.pipeline_version == "v2"


def test_exact_grouping_by_shape() -> None:
    messages = [
        "timeout after 3000 ms to 10.0.0.12:5432",
        "timeout after 15 ms to 10.0.0.7:6543",
        "disk full",
    ]

    report = MessageGroupingService().group_messages(messages)

    assert report.total_messages == 3
    assert report.group_count == 2
    assert report.singleton_count == 1

    top = report.groups[0]
    assert top.member_count == 2
    assert top.member_indices == [0, 1]
    assert top.label == "timeout after {NUMBER} ms to {IP}"
    assert top.normalized == "timeout after {NUMBER} ms to {IP}"
    assert top.example_message == messages[0]
    assert top.fingerprints == [compute_fingerprint(messages[0])]


def test_group_id_is_deterministic() -> None:
    report = MessageGroupingService().group_messages(["disk full"])
    fp = compute_fingerprint("disk full")

    assert report.groups[0].group_id == hashlib.sha256(fp.encode("utf-8")).hexdigest()[:16]


def test_groups_sorted_by_size_desc() -> None:
    messages = ["a 1", "b 1", "b 2", "c 1", "c 2", "c 3"]

    report = MessageGroupingService().group_messages(messages)

    assert [g.member_count for g in report.groups] == [3, 2, 1]
    assert report.groups[0].normalized == "c {NUMBER}"


def test_empty_shapes_group_together() -> None:
    messages = ["", "/t1/?", "disk full"]

    report = MessageGroupingService().group_messages(messages)

    empty = next(g for g in report.groups if g.normalized == "")
    assert empty.member_indices == [0, 1]
    assert empty.label == "(пустая форма)"


def test_long_label_is_truncated() -> None:
    message = "error " + "word " * 50
    config = GroupingConfig(max_label_length=40)

    report = MessageGroupingService(config).group_messages([message])

    label = report.groups[0].label
    assert len(label) == 40
    assert label.endswith("...")


def test_normalize_all_returns_fingerprints() -> None:
    results = MessageGroupingService().normalize_all(["retry 3", "retry 4"])

    assert [r.normalized for r in results] == ["retry {NUMBER}", "retry {NUMBER}"]
    assert results[0].fingerprint == results[1].fingerprint == compute_fingerprint("retry 3")
    assert results[1].message == "retry 4"


# ====================================================================
# Слияние близких форм
# ====================================================================


_ORDERS = "connection refused by upstream service orders"
_PAYMENTS = "connection refused by upstream service payments"
_DISK = "disk quota exceeded on volume"


def test_exact_threshold_does_not_merge() -> None:
    report = MessageGroupingService().group_messages([_ORDERS, _PAYMENTS, _DISK])

    assert report.group_count == 3


def test_similar_shapes_merge_below_threshold() -> None:
    config = GroupingConfig(similarity_threshold=0.5)

    report = MessageGroupingService(config).group_messages([_ORDERS, _PAYMENTS, _PAYMENTS, _DISK])

    assert report.group_count == 2
    merged = report.groups[0]
    assert merged.member_indices == [0, 1, 2]
    assert len(merged.fingerprints) == 2
    assert merged.fingerprints == sorted(merged.fingerprints)
    # представитель — самая частая форма
    assert merged.normalized == _PAYMENTS
    assert merged.example_message == _PAYMENTS


def test_merge_keeps_empty_shape_separate() -> None:
    config = GroupingConfig(similarity_threshold=0.5)

    report = MessageGroupingService(config).group_messages(["", _ORDERS, _PAYMENTS])

    assert report.group_count == 2
    assert any(g.normalized == "" and g.member_indices == [0] for g in report.groups)


def test_merge_with_empty_vocabulary_keeps_shapes_apart() -> None:
    """Формы без токенов длиной 2+ символа не сливаются."""
    config = GroupingConfig(similarity_threshold=0.5)

    report = MessageGroupingService(config).group_messages(["a", "b"])

    assert report.group_count == 2


def test_single_shape_skips_clustering() -> None:
    config = GroupingConfig(similarity_threshold=0.5)

    report = MessageGroupingService(config).group_messages([_ORDERS, _ORDERS])

    assert report.group_count == 1
    assert report.groups[0].member_count == 2
