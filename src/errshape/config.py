"""Конфигурация приложения, загружаемая из переменных окружения."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Конфигурация errshape.

    Все значения задаются через переменные окружения с префиксом ``ERRSHAPE_``
    или через файл ``.env`` в рабочей директории. Обязательных полей нет.
    """

    model_config = SettingsConfigDict(
        env_prefix="ERRSHAPE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    log_level: str = Field(default="INFO", description="Уровень логирования")

    patterns_path: str | None = Field(
        default=None,
        description="YAML-файл с переопределениями грамматик детекторов",
    )

    grouping_similarity_threshold: float = Field(
        default=1.0, ge=0.0, le=1.0,
        description="Порог схожести форм для слияния групп (1.0 = только точное совпадение)",
    )
    grouping_max_features: int = Field(
        default=1000, ge=1,
        description="Размер словаря TF-IDF при слиянии близких форм",
    )

    server_host: str = Field(default="0.0.0.0", description="Хост для HTTP-сервера")
    server_port: int = Field(default=8091, ge=1, le=65535, description="Порт для HTTP-сервера")
