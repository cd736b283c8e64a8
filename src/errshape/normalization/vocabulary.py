"""Словарь плейсхолдеров — контракт с потребителями нормализованных строк."""

from __future__ import annotations

from enum import Enum


class Placeholder(str, Enum):
    """Закрытый набор токенов, подставляемых вместо волатильных данных.

    Потребители (дедупликация, группировка, алерты) сравнивают нормализованные
    строки на равенство, поэтому значения здесь — неизменяемые литералы.
    """

    URL = "{URL}"
    IP = "{IP}"
    DOMAIN = "{DOMAIN}"
    FILE = "{FILE}"
    HASH = "{HASH}"
    NUMBER = "{NUMBER}"
    DATE = "{DATE}"
    GENERIC = "{?}"
    STACK_FRAMES = "{StackFrames}"

    def __str__(self) -> str:
        return self.value
