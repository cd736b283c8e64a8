"""Каталог детекторов волатильных данных и порядок их применения.

Каждый детектор — именованная пара «регулярное выражение → плейсхолдер».
Каталог (``DETECTOR_SPECS``) описывает *что* распознаётся, а
``PIPELINE_ORDER`` — *в каком порядке* это применяется. Порядок — отдельный
контракт: его изменение меняет нормализованную форму для всех сообщений,
поэтому любая правка порядка или встроенного паттерна требует инкремента
``PIPELINE_VERSION``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from errshape.exceptions import PatternCompileError, PatternConfigError
from errshape.normalization.vocabulary import Placeholder

logger = logging.getLogger(__name__)

# \g<name>, \g<1> и \1 в шаблоне замены.
_TEMPLATE_GROUP_RE = re.compile(r"\\g<(\w+)>|\\(\d+)")

PIPELINE_VERSION = 2
"""Версия порядка и грамматик встроенного каталога.

Входит в fingerprint (``v{PIPELINE_VERSION}:...``): после инкремента старые
ключи дедупликации тихо перестают совпадать с новыми.
"""


class MatchKind(str, Enum):
    """Способ применения детектора к рабочей строке."""

    SUBSTITUTE = "substitute"  # все совпадения → плейсхолдер
    CONTEXT = "context"  # совпадение с окружением → шаблон с плейсхолдером
    TRUNCATE = "truncate"  # всё начиная с первого совпадения → плейсхолдер


@dataclass(frozen=True)
class DetectorSpec:
    """Исходное (некомпилированное) описание детектора."""

    name: str
    pattern: str
    placeholder: Placeholder
    kind: MatchKind = MatchKind.SUBSTITUTE
    template: str | None = None
    flags: int = 0

    def compile(self, pattern: str | None = None, flags: int | None = None) -> Detector:
        """Скомпилировать детектор; ошибка компиляции — фатальная ошибка конфигурации."""
        source = self.pattern if pattern is None else pattern
        effective_flags = self.flags if flags is None else flags
        try:
            compiled = re.compile(source, effective_flags)
        except re.error as exc:
            raise PatternCompileError(f"invalid pattern: {exc}", detector=self.name) from exc
        return Detector(
            name=self.name,
            pattern=compiled,
            placeholder=self.placeholder,
            kind=self.kind,
            template=self.template,
        )


@dataclass(frozen=True)
class Detector:
    """Скомпилированный детектор. Неизменяем, безопасен для общих вызовов из потоков."""

    name: str
    pattern: re.Pattern[str]
    placeholder: Placeholder
    kind: MatchKind = MatchKind.SUBSTITUTE
    template: str | None = None

    def __post_init__(self) -> None:
        if self.kind is MatchKind.CONTEXT:
            if not self.template or self.placeholder.value not in self.template:
                raise PatternConfigError(
                    f"context template must contain {self.placeholder.value}",
                    detector=self.name,
                )
        if self.template:
            # Группы, на которые ссылается шаблон, обязаны быть в паттерне и после override.
            for match in _TEMPLATE_GROUP_RE.finditer(self.template):
                ref = match.group(1) or match.group(2)
                if ref.isdigit():
                    known = int(ref) <= self.pattern.groups
                else:
                    known = ref in self.pattern.groupindex
                if not known:
                    raise PatternConfigError(
                        f"template references group {ref!r} missing from pattern",
                        detector=self.name,
                    )

    @property
    def replacement(self) -> str:
        return self.template if self.template is not None else self.placeholder.value

    def apply(self, text: str) -> str:
        """Применить детектор к тексту и вернуть результат."""
        if self.kind is MatchKind.TRUNCATE:
            match = self.pattern.search(text)
            if match is None:
                return text
            return f"{text[:match.start()]} {self.placeholder.value}"
        return self.pattern.sub(self.replacement, text)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

_HEX = r"[0-9a-fA-F]"
# Hex-токен обязан содержать хотя бы одну букву a-f: чисто цифровые
# последовательности — это {NUMBER}, а не хэш.
_HAS_HEX_LETTER = r"(?=\d*[a-fA-F])"

_OCTET = r"(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)"
_IPV4 = rf"(?:{_OCTET}\.){{3}}{_OCTET}"

_H16 = r"[0-9a-fA-F]{1,4}"
_IPV6 = (
    rf"(?:{_H16}:){{7}}{_H16}"
    rf"|(?:{_H16}(?::{_H16}){{0,6}})?::{_H16}(?::{_H16}){{0,6}}"
    rf"|{_H16}(?::{_H16}){{0,6}}::"
)
_PORT = r"(?::\d{1,5}\b)?"

_MONTH_NAMES = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_WEEKDAY = (
    r"(?:(?:Mon(?:day)?|Tue(?:sday)?|Wed(?:nesday)?|Thu(?:rsday)?|"
    r"Fri(?:day)?|Sat(?:urday)?|Sun(?:day)?),?\s+)?"
)
_CLOCK = r"\d{1,2}:\d{2}(?::\d{2})?(?:[.,]\d{1,9})?"
_TZ = r"(?:\s?(?:Z|UTC|GMT|[+-]\d{2}:?\d{2})\b)?"

# Домены: только распознаваемые TLD. Расширения исходников (py, rs, sh, pl, ...)
# сюда намеренно не входят.
_TLDS = (
    r"(?:com|net|org|io|dev|cloud|ai|co|cc|biz|gov|edu|mil|local|internal|lan|corp|"
    r"us|uk|de|fr|ru|cn|jp|kr|in|br|eu|nl|se|ch|au|ca|es|it|tv|xyz)"
)
_DOMAIN_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"

_SOURCE_EXTENSIONS = (
    r"(?:py|pyw|java|kt|kts|scala|groovy|go|rs|rb|php|c|cc|cpp|cxx|h|hh|hpp|cs|swift|"
    r"mm|m|jsx|js|mjs|cjs|tsx|ts|vue|svelte|css|scss|less|sass|html|htm|json|yaml|yml|"
    r"toml|xml|svg|graphql|gql|map|sql|sh|lua|exs|ex|erl|dart|log|txt|conf|ini|jar|so|dll)"
)
_PATH_SEGMENT = r"[\w.@+-]+"

_LABELS = r"(?<![\w-])(?i:key|currency|platform)|币种|货币|平台|密钥"


# ---------------------------------------------------------------------------
# Catalog (definition order: grouped by category)
# ---------------------------------------------------------------------------

DETECTOR_SPECS: tuple[DetectorSpec, ...] = (
    # --- Сетевые адреса ---
    DetectorSpec(
        name="url",
        pattern=(
            r"\b(?:https?|wss?|ftp|grpcs?|redis|amqps?|postgres(?:ql)?|mysql|mongodb(?:\+srv)?)://"
            r"[^\s'\"<>`{}|\\^]+"
            r"(?<![.,;:!?)\]])"
        ),
        placeholder=Placeholder.URL,
        flags=re.IGNORECASE,
    ),
    DetectorSpec(
        name="ip",
        pattern=(
            rf"\[(?:{_IPV6})\]{_PORT}"
            rf"|\b{_IPV4}\b{_PORT}"
            rf"|(?<![\w:.}}])(?:{_IPV6})(?![\w:{{]|\.\d)"
        ),
        placeholder=Placeholder.IP,
    ),
    DetectorSpec(
        name="domain",
        pattern=rf"(?<![\w./\\-])(?:{_DOMAIN_LABEL}\.)+{_TLDS}(?![\w{{-]|\.[\w{{-]){_PORT}",
        placeholder=Placeholder.DOMAIN,
        flags=re.IGNORECASE,
    ),
    # --- Пути к файлам ---
    # Хвост :line[:col] поглощается вместе с путём.
    DetectorSpec(
        name="source_file_path",
        pattern=(
            rf"(?<![\w./\\-])(?:[A-Za-z]:|~|\.{{1,2}})?(?:{_PATH_SEGMENT})?"
            rf"(?:[/\\]{_PATH_SEGMENT})+?\.{_SOURCE_EXTENSIONS}\b(?::\d+(?::\d+)?)?"
        ),
        placeholder=Placeholder.FILE,
    ),
    # Голое имя файла без каталога: Bar.java:10, main.3f2a1b9c.js, app.js.map
    DetectorSpec(
        name="file_name",
        pattern=(
            rf"(?<![\w./\\}}-])[\w-]+(?:[-.]{_HAS_HEX_LETTER}{_HEX}{{6,}})?"
            rf"(?:\.{_SOURCE_EXTENSIONS}\b)+(?::\d+(?::\d+)?)?(?![\w-]|\.\w)"
        ),
        placeholder=Placeholder.FILE,
    ),
    # --- Идентификаторы ---
    DetectorSpec(
        name="uuid",
        pattern=rf"\b{_HEX}{{8}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{4}}-{_HEX}{{12}}\b",
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="jwt",
        pattern=r"(?<![\w-])eyJ[A-Za-z0-9_-]{4,}\.[A-Za-z0-9_-]{4,}\.[A-Za-z0-9_-]*",
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="api_key",
        pattern=(
            r"\b(?:sk|pk|rk)_(?:live|test)_[0-9A-Za-z]{10,}\b"
            r"|\bsk-(?:proj-|ant-)?[A-Za-z0-9_-]{20,}"
            r"|\bAKIA[0-9A-Z]{16}\b"
            r"|\bAIza[0-9A-Za-z_-]{35}"
            r"|\bgh[pousr]_[A-Za-z0-9]{36,}\b"
            r"|\bxox[abpr]-[0-9A-Za-z-]{10,}"
        ),
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="object_id",
        pattern=rf"\b{_HAS_HEX_LETTER}{_HEX}{{24}}\b",
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="trace_id",
        pattern=(
            rf"\b00-{_HEX}{{32}}-{_HEX}{{16}}-{_HEX}{{2}}\b"
            rf"|\b{_HAS_HEX_LETTER}{_HEX}{{16}}\b"
        ),
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="hash",
        pattern=(
            rf"\b{_HAS_HEX_LETTER}"
            rf"(?:{_HEX}{{128}}|{_HEX}{{64}}|{_HEX}{{40}}|{_HEX}{{32}})\b"
        ),
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="task_id",
        pattern=r"(?<![\w-])(?:task|job)[-_:](?=[\w-]{0,64}\d)[0-9A-Za-z]+(?:[-_][0-9A-Za-z]+)*",
        placeholder=Placeholder.HASH,
        flags=re.IGNORECASE,
    ),
    # Префиксные идентификаторы вида cus_NffrFeUfNV2Hib, req_8x7Yq2...
    DetectorSpec(
        name="underscore_id",
        pattern=r"\b[a-z]{2,10}_(?=[A-Za-z]*\d)[A-Za-z0-9]{12,}\b",
        placeholder=Placeholder.HASH,
    ),
    # Минимум 3 цифры, заглавная и строчная буквы: отсекает CamelCase-имена
    # классов вроде Http2ConnectionHandler.
    DetectorSpec(
        name="base64_blob",
        pattern=(
            r"(?<![\w+/=])"
            r"(?=(?:[A-Za-z+/]*\d){3})"
            r"(?=[A-Za-z0-9+/]*[A-Z])"
            r"(?=[A-Za-z0-9+/]*[a-z])"
            r"[A-Za-z0-9+][A-Za-z0-9+/]{31,}={0,2}"
            r"(?![\w+/=])"
        ),
        placeholder=Placeholder.HASH,
    ),
    DetectorSpec(
        name="long_hex",
        pattern=(
            rf"\b(?:0[xX]{_HEX}+"
            rf"|(?=[0-9a-fA-F]*\d){_HAS_HEX_LETTER}{_HEX}{{6,}})\b"
        ),
        placeholder=Placeholder.HASH,
    ),
    # --- Даты и время (от более специфичных к менее специфичным) ---
    # ISO 8601: 2026-02-06T10:12:13.123Z, 2026-02-06 10:12:13,123 (Log4j),
    # 2024-01-15 10:30:00 UTC
    DetectorSpec(
        name="iso_datetime",
        pattern=(
            r"\b\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}"
            r"(?::\d{2})?"
            r"(?:[.,]\d{1,9})?"
            + _TZ
        ),
        placeholder=Placeholder.DATE,
    ),
    # "Feb 6, 2026", "06 Feb 2026", "Mon, 02 Jan 2006 15:04:05 GMT"
    DetectorSpec(
        name="named_month_datetime",
        pattern=(
            rf"\b{_WEEKDAY}"
            r"(?:"
            rf"\d{{1,2}}[- ]{_MONTH_NAMES}\.?[- ]\d{{4}}"
            r"|"
            rf"{_MONTH_NAMES}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}"
            r")"
            rf"(?:,?[T ]{_CLOCK}{_TZ})?"
        ),
        placeholder=Placeholder.DATE,
        flags=re.IGNORECASE,
    ),
    # syslog: "Feb  6 10:12:13"
    DetectorSpec(
        name="syslog_datetime",
        pattern=rf"\b{_MONTH_NAMES}\s+\d{{1,2}}\s+\d{{2}}:\d{{2}}:\d{{2}}\b",
        placeholder=Placeholder.DATE,
    ),
    DetectorSpec(
        name="cjk_datetime",
        pattern=r"(?<!\d)\d{4}年\d{1,2}月\d{1,2}日(?:\s*\d{1,2}[:：]\d{2}(?:[:：]\d{2})?)?",
        placeholder=Placeholder.DATE,
    ),
    # 02/06/2026, 2026/02/06 (требуется 4-значный год)
    DetectorSpec(
        name="slash_date",
        pattern=r"\b\d{4}/\d{1,2}/\d{1,2}\b|\b\d{1,2}/\d{1,2}/\d{4}\b",
        placeholder=Placeholder.DATE,
    ),
    # 06.02.2026, 2026.02.06 (4-значный год → версии не ловятся)
    DetectorSpec(
        name="dot_date",
        pattern=r"\b\d{4}\.\d{1,2}\.\d{1,2}\b|\b\d{1,2}\.\d{1,2}\.\d{4}\b",
        placeholder=Placeholder.DATE,
    ),
    DetectorSpec(
        name="iso_date",
        pattern=r"\b\d{4}-\d{2}-\d{2}\b",
        placeholder=Placeholder.DATE,
    ),
    DetectorSpec(
        name="time_only",
        pattern=r"(?<!\d[.:])\b\d{2}:\d{2}:\d{2}(?:[.,]\d{1,6})?\b",
        placeholder=Placeholder.DATE,
    ),
    # --- Числа ---
    DetectorSpec(
        name="number",
        pattern=r"\b\d+(?:\.\d+)?\b",
        placeholder=Placeholder.NUMBER,
    ),
    # --- Контекстные правила ---
    # 24-hex ID в сегменте пути — слот порядкового идентификатора, а не хэш.
    DetectorSpec(
        name="path_object_id",
        pattern=r"/[0-9a-fA-F]{24}(?![0-9A-Za-z_])",
        placeholder=Placeholder.NUMBER,
        kind=MatchKind.CONTEXT,
        template="/{NUMBER}",
    ),
    DetectorSpec(
        name="label_code",
        pattern=(
            rf"(?P<label>{_LABELS})(?P<sep>\s*[:=：]\s*)"
            r"(?=[0-9]*[A-Z])[A-Z0-9]{2,16}(?![A-Za-z0-9_-])"
        ),
        placeholder=Placeholder.GENERIC,
        kind=MatchKind.CONTEXT,
        template=r"\g<label>\g<sep>{?}",
    ),
    DetectorSpec(
        name="paren_code",
        pattern=r"\((?=[0-9]*[A-Z])[A-Z0-9]{2,8}\)",
        placeholder=Placeholder.GENERIC,
        kind=MatchKind.CONTEXT,
        template="({?})",
    ),
    # --- Stack trace ---
    DetectorSpec(
        name="stack_frames",
        pattern=r"\n[ \t]+at ",
        placeholder=Placeholder.STACK_FRAMES,
        kind=MatchKind.TRUNCATE,
    ),
)


# ---------------------------------------------------------------------------
# Pipeline order
# ---------------------------------------------------------------------------

PIPELINE_ORDER: tuple[str, ...] = (
    # Структурные многотокенные конструкции — первыми.
    "url",
    "jwt",
    "api_key",
    "uuid",
    # Даты: от полного datetime к голому времени. До IP: 10:12:13 не должен
    # стать IPv6, а 06.02.2026 — обрывком IPv4.
    "iso_datetime",
    "named_month_datetime",
    "syslog_datetime",
    "cjk_datetime",
    "slash_date",
    "dot_date",
    "iso_date",
    "time_only",
    "ip",
    # Домен раньше пути: service.cc — домен, а не файл с расширением .cc.
    "domain",
    "source_file_path",
    # Голое имя файла — только после полных путей.
    "file_name",
    # Видит путь до того, как object_id превратит ID в {HASH}.
    "path_object_id",
    "object_id",
    "trace_id",
    "hash",
    "task_id",
    "underscore_id",
    "base64_blob",
    # Числа раньше остаточного hex: 123456 — {NUMBER}, а не {HASH}.
    "number",
    "long_hex",
    # Метки — после чисел и хэшей, чтобы видеть только коды рядом с меткой.
    "label_code",
    "paren_code",
    "stack_frames",
)


@dataclass(frozen=True)
class PatternOverride:
    """Замена грамматики одного детектора (плейсхолдер и позиция неизменны)."""

    pattern: str
    ignore_case: bool | None = None


def _specs_by_name() -> dict[str, DetectorSpec]:
    specs: dict[str, DetectorSpec] = {}
    for spec in DETECTOR_SPECS:
        if spec.name in specs:
            raise PatternConfigError("duplicate detector name", detector=spec.name)
        specs[spec.name] = spec

    if len(set(PIPELINE_ORDER)) != len(PIPELINE_ORDER):
        raise PatternConfigError("pipeline order contains duplicates")
    missing = set(specs) ^ set(PIPELINE_ORDER)
    if missing:
        raise PatternConfigError(
            f"catalog and pipeline order disagree: {sorted(missing)}"
        )
    return specs


def build_detectors(
    overrides: Mapping[str, PatternOverride] | None = None,
) -> tuple[Detector, ...]:
    """Собрать детекторы в порядке ``PIPELINE_ORDER``.

    Args:
        overrides: Замены грамматик по имени детектора.

    Raises:
        PatternConfigError: Неизвестное имя детектора в overrides.
        PatternCompileError: Паттерн не компилируется.
    """
    specs = _specs_by_name()
    overrides = overrides or {}

    unknown = sorted(set(overrides) - set(specs))
    if unknown:
        raise PatternConfigError(f"unknown detector(s): {', '.join(unknown)}")

    detectors: list[Detector] = []
    for name in PIPELINE_ORDER:
        spec = specs[name]
        override = overrides.get(name)
        if override is None:
            detectors.append(spec.compile())
            continue

        flags = spec.flags
        if override.ignore_case is True:
            flags |= re.IGNORECASE
        elif override.ignore_case is False:
            flags &= ~re.IGNORECASE
        detectors.append(spec.compile(pattern=override.pattern, flags=flags))
        logger.info("Грамматика детектора %s переопределена", name)

    logger.debug("Собрано %d детекторов (v%d)", len(detectors), PIPELINE_VERSION)
    return tuple(detectors)
