"""HTTP-сервер errshape — REST API нормализации и группировки сообщений."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from errshape import __version__
from errshape.models.grouping import GroupingReport, NormalizedMessage

logger = logging.getLogger(__name__)


# --- Модели запросов и ответов ---


class NormalizeRequest(BaseModel):
    """Тело POST /api/v1/normalize."""

    message: str


class BatchNormalizeRequest(BaseModel):
    """Тело POST /api/v1/normalize/batch."""

    messages: list[str]


class BatchNormalizeResponse(BaseModel):
    """JSON-ответ POST /api/v1/normalize/batch."""

    pipeline_version: str
    results: list[NormalizedMessage]


class GroupRequest(BaseModel):
    """Тело POST /api/v1/group."""

    messages: list[str]
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)


class ErrorResponse(BaseModel):
    """JSON-ответ при ошибке."""

    detail: str


class HealthResponse(BaseModel):
    """JSON-ответ GET /health."""

    status: str
    version: str
    pipeline_version: str


# --- Состояние приложения ---


class _AppState:
    """Долгоживущие объекты, разделяемые между запросами (только чтение)."""

    def __init__(self) -> None:
        self.settings: Any = None
        self.pipeline: Any = None


_state = _AppState()


def _require_ready() -> None:
    if _state.pipeline is None or _state.settings is None:
        raise HTTPException(status_code=503, detail="Сервер не инициализирован")


# --- Lifespan ---


@asynccontextmanager
async def _lifespan(app: FastAPI):  # noqa: ARG001
    """Инициализация при старте: настройки, логирование, pipeline."""
    from errshape.config import Settings
    from errshape.logging_config import setup_logging
    from errshape.normalization.overrides import build_pipeline

    settings = Settings()
    setup_logging(settings.log_level)

    # ConfigurationError здесь останавливает старт сервера
    pipeline = build_pipeline(settings.patterns_path)

    logger.info(
        "errshape server v%s запускается (pipeline %s)", __version__, pipeline.version_tag,
    )

    _state.settings = settings
    _state.pipeline = pipeline

    yield

    logger.info("errshape server останавливается")


# --- FastAPI ---


app = FastAPI(
    title="errshape",
    description="Нормализация и группировка сообщений об ошибках — REST API",
    version=__version__,
    lifespan=_lifespan,
)


# --- Маршруты ---


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Проверка работоспособности сервера."""
    from errshape.normalization.pipeline import DEFAULT_PIPELINE

    pipeline = _state.pipeline or DEFAULT_PIPELINE
    return HealthResponse(status="ok", version=__version__, pipeline_version=pipeline.version_tag)


@app.post(
    "/api/v1/normalize",
    response_model=NormalizedMessage,
    responses={503: {"model": ErrorResponse, "description": "Сервер не инициализирован"}},
)
def normalize(request: NormalizeRequest) -> NormalizedMessage:
    """Нормализовать одно сообщение и вернуть его fingerprint."""
    from errshape.utils.fingerprint import fingerprint_normalized

    _require_ready()
    pipeline = _state.pipeline
    normalized = pipeline.normalize(request.message)
    return NormalizedMessage(
        message=request.message,
        normalized=normalized,
        fingerprint=fingerprint_normalized(normalized, pipeline.version_tag),
    )


@app.post(
    "/api/v1/normalize/batch",
    response_model=BatchNormalizeResponse,
    responses={503: {"model": ErrorResponse, "description": "Сервер не инициализирован"}},
)
def normalize_batch(request: BatchNormalizeRequest) -> BatchNormalizeResponse:
    """Нормализовать пачку сообщений."""
    from errshape.services.grouping_service import MessageGroupingService

    _require_ready()
    service = MessageGroupingService(pipeline=_state.pipeline)
    return BatchNormalizeResponse(
        pipeline_version=_state.pipeline.version_tag,
        results=service.normalize_all(request.messages),
    )


@app.post(
    "/api/v1/group",
    response_model=GroupingReport,
    responses={503: {"model": ErrorResponse, "description": "Сервер не инициализирован"}},
)
def group(request: GroupRequest) -> GroupingReport:
    """Сгруппировать сообщения — эквивалент ``errshape group --output-format json``."""
    from errshape.services.grouping_service import GroupingConfig, MessageGroupingService

    _require_ready()
    settings = _state.settings
    threshold = (
        request.similarity_threshold
        if request.similarity_threshold is not None
        else settings.grouping_similarity_threshold
    )
    service = MessageGroupingService(
        GroupingConfig(
            similarity_threshold=threshold,
            tfidf_max_features=settings.grouping_max_features,
        ),
        pipeline=_state.pipeline,
    )
    return service.group_messages(request.messages)


def main() -> None:
    """Точка входа консольного скрипта errshape-server."""
    import sys

    from errshape.config import Settings

    try:
        settings = Settings()
    except Exception as exc:
        print(f"Ошибка конфигурации: {exc}", file=sys.stderr)
        sys.exit(2)

    import uvicorn

    uvicorn.run(
        "errshape.server:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
