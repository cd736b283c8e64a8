"""Точка входа CLI errshape."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TextIO

from errshape import __version__

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="errshape",
        description="Нормализация, fingerprinting и группировка сообщений об ошибках",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Уровень логирования (переопределяет ERRSHAPE_LOG_LEVEL)",
    )
    parser.add_argument(
        "--output-format",
        choices=["text", "json"],
        default="text",
        help="Формат вывода (по умолчанию: text)",
    )
    parser.add_argument(
        "--patterns",
        default=None,
        help="YAML-файл с переопределениями детекторов (переопределяет ERRSHAPE_PATTERNS_PATH)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"errshape {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    normalize = subparsers.add_parser(
        "normalize",
        help="Нормализовать сообщения",
        description=(
            "Нормализовать сообщения из аргументов. Без аргументов stdin читается "
            "как одно сообщение (многострочные stack trace сохраняются)."
        ),
    )
    normalize.add_argument("messages", nargs="*", help="Сообщения для нормализации")
    normalize.add_argument(
        "--split-lines",
        action="store_true",
        help="Считать каждую непустую строку stdin отдельным сообщением",
    )
    normalize.add_argument(
        "--with-fingerprint",
        action="store_true",
        help="Выводить fingerprint рядом с нормализованной формой",
    )

    group = subparsers.add_parser(
        "group",
        help="Сгруппировать сообщения по нормализованной форме",
    )
    group.add_argument(
        "--input",
        default=None,
        help="Файл с сообщениями: .json (массив строк) или по одному на строку. По умолчанию stdin",
    )
    group.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Порог схожести для слияния форм (переопределяет ERRSHAPE_GROUPING_SIMILARITY_THRESHOLD)",
    )
    return parser


def run(args: argparse.Namespace, stdin: TextIO | None = None) -> int:
    """Собрать зависимости и выполнить команду. Возвращает код выхода."""
    from errshape.config import Settings
    from errshape.exceptions import ConfigurationError, ErrshapeError
    from errshape.logging_config import setup_logging
    from errshape.normalization.overrides import build_pipeline

    if stdin is None:
        stdin = sys.stdin

    # 1. Загрузка настроек
    try:
        overrides: dict[str, object] = {}
        if args.patterns is not None:
            overrides["patterns_path"] = args.patterns
        if getattr(args, "threshold", None) is not None:
            overrides["grouping_similarity_threshold"] = args.threshold
        settings = Settings(**overrides)  # type: ignore[arg-type]
    except Exception as exc:
        # pydantic-settings выбрасывает ValidationError при невалидных значениях
        print(f"Ошибка конфигурации: {exc}", file=sys.stderr)
        return 2

    # 2. Настройка логирования
    setup_logging(args.log_level or settings.log_level)

    if args.command is None:
        logger.error("Не указана команда: errshape normalize|group ...")
        return 2

    # 3. Выполнение
    try:
        pipeline = build_pipeline(settings.patterns_path)

        if args.command == "normalize":
            messages = _collect_normalize_input(args, stdin)
            _run_normalize(messages, pipeline, args)
        else:
            messages = _load_messages(args.input, stdin)
            _run_group(messages, pipeline, settings, args)
    except ConfigurationError as exc:
        logger.error("Ошибка конфигурации: %s", exc)
        return 2
    except ErrshapeError as exc:
        logger.error("Ошибка: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Прервано пользователем")
        return 130

    return 0


# --- normalize ---


def _collect_normalize_input(args: argparse.Namespace, stdin: TextIO) -> list[str]:
    if args.messages:
        return list(args.messages)
    raw = stdin.read()
    if args.split_lines:
        return [line for line in raw.splitlines() if line.strip()]
    return [raw]


def _run_normalize(
    messages: list[str],
    pipeline: NormalizationPipeline,  # noqa: F821
    args: argparse.Namespace,
) -> None:
    from errshape.services.grouping_service import MessageGroupingService

    results = MessageGroupingService(pipeline=pipeline).normalize_all(messages)

    if args.output_format == "json":
        output = {
            "pipeline_version": pipeline.version_tag,
            "results": [r.model_dump() for r in results],
        }
        print(json.dumps(output, indent=2, ensure_ascii=False))
        return

    for result in results:
        if args.with_fingerprint:
            print(f"{result.fingerprint}  {result.normalized}")
        else:
            print(result.normalized)


# --- group ---


def _load_messages(path: str | None, stdin: TextIO) -> list[str]:
    """Прочитать сообщения из файла или stdin.

    ``.json`` — массив строк; иначе — по одному сообщению на непустую строку.
    """
    from errshape.exceptions import InputError

    if path is None:
        raw = stdin.read()
        is_json = False
    else:
        source = Path(path)
        try:
            raw = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise InputError(f"Не удалось прочитать {source}: {exc}") from exc
        is_json = source.suffix.lower() == ".json"

    if not is_json:
        return [line for line in raw.splitlines() if line.strip()]

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InputError(f"Невалидный JSON в {path}: {exc}") from exc
    if not isinstance(data, list) or not all(isinstance(m, str) for m in data):
        raise InputError(f"Ожидался JSON-массив строк в {path}")
    return data


def _run_group(
    messages: list[str],
    pipeline: NormalizationPipeline,  # noqa: F821
    settings: Settings,  # noqa: F821
    args: argparse.Namespace,
) -> None:
    from errshape.services.grouping_service import GroupingConfig, MessageGroupingService

    service = MessageGroupingService(
        GroupingConfig(
            similarity_threshold=settings.grouping_similarity_threshold,
            tfidf_max_features=settings.grouping_max_features,
        ),
        pipeline=pipeline,
    )
    report = service.group_messages(messages)

    if args.output_format == "json":
        print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    else:
        _print_grouping_report(report)


def _print_grouping_report(report: GroupingReport) -> None:  # noqa: F821
    """Вывод отчёта группировки в stdout."""

    print(
        f"=== Группы сообщений "
        f"({report.group_count} уникальных форм из {report.total_messages} сообщений) ==="
    )
    print()

    for i, group in enumerate(report.groups, 1):
        group_lines = [
            f"Группа #{i} ({group.member_count} сообщ.)",
            f"Форма: {_truncate(_normalize_single_line(group.label), 200)}",
        ]
        if group.example_message:
            example = _normalize_single_line(group.example_message)
            group_lines.append(f"Пример: {_truncate(example, 200)}")
        group_lines.extend(_wrap_indices(group.member_indices))

        for line in _render_box(group_lines):
            print(line)
        print()


def _wrap_indices(indices: list[int], max_width: int = 80) -> list[str]:
    """Отформатировать список номеров сообщений с переносом строк."""
    prefix = "Сообщения: "
    indent = " " * len(prefix)

    lines: list[str] = []
    current = prefix

    for i, idx in enumerate(str(v) for v in indices):
        separator = ", " if i > 0 else ""
        candidate = current + separator + idx

        if len(candidate) > max_width and current != prefix and current != indent:
            lines.append(current + ",")
            current = indent + idx
        else:
            current = candidate

    lines.append(current)
    return lines


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit] + "..."


def _normalize_single_line(value: str) -> str:
    """Схлопнуть переводы строк/табуляцию в одну строку для рамочного вывода."""
    return " ".join(value.replace("\t", " ").split())


def _render_box(lines: list[str]) -> list[str]:
    """Отрендерить список строк в Unicode-рамку."""
    if not lines:
        return []

    width = max(len(line) for line in lines)
    top = f"╔{'═' * (width + 2)}╗"
    bottom = f"╚{'═' * (width + 2)}╝"
    body = [f"║ {line.ljust(width)} ║" for line in lines]

    return [top, *body, bottom]


def main() -> None:
    """Синхронная точка входа для CLI."""
    parser = build_parser()
    args = parser.parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
