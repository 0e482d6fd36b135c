"""
HTTP surface for the HabitNex AI services.

Routes are thin: each decodes the request, resolves the caller and hands
off to the Orchestrator, whose result carries the status code and body.
"""

import json
import logging
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette_exporter import PrometheusMiddleware, handle_metrics

from habitnex.api.auth import get_user_id
from habitnex.api.usage import usage
from habitnex.config.settings import AppSettings, get_settings
from habitnex.core.guardrails import QuotaGuard
from habitnex.core.orchestrator import Orchestrator, OrchestratorResult
from habitnex.core.usage_tracking import UsageTracker
from habitnex.logging_utils import configure_logging
from habitnex.sdk import create_ai_client
from habitnex.storage.repository import HabitRepository, UsageRepository, initialize_schema

logger = logging.getLogger(__name__)


class InvalidJSONBody(Exception):
    pass


def build_orchestrator(settings: AppSettings) -> Orchestrator:
    """Wire the orchestrator and its collaborators from settings."""
    config = settings.load_config()
    initialize_schema(settings.db_path)
    ai_client = create_ai_client(config.ai, settings.ai_api_key, settings.ai_base_url)
    return Orchestrator(
        config=config,
        ai_client=ai_client,
        tracker=UsageTracker(config, settings.db_path),
        quota=QuotaGuard(config, UsageRepository(settings.db_path)),
        habit_repository=HabitRepository(settings.db_path),
    )


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise InvalidJSONBody(str(exc)) from exc


def _respond(result: OrchestratorResult) -> JSONResponse:
    return JSONResponse(result.body, status_code=result.status_code)


def create_app(
    settings: Optional[AppSettings] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Environment settings, defaults to get_settings()
        orchestrator: Prebuilt orchestrator (tests inject one)
    """
    settings = settings or get_settings()
    configure_logging(settings.environment, settings.log_level, settings.log_format)

    app = FastAPI(title="HabitNex AI Services")
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)
    logger.info(
        "Application configured",
        extra={"environment": settings.environment, "ai_enabled": app.state.orchestrator.ai_enabled},
    )

    app.add_middleware(PrometheusMiddleware)
    app.add_route("/metrics", handle_metrics)
    app.include_router(usage, tags=["usage"])

    @app.exception_handler(InvalidJSONBody)
    async def invalid_json(request: Request, exc: InvalidJSONBody):
        return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)

    def get_orchestrator(request: Request) -> Orchestrator:
        return request.app.state.orchestrator

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/ai/enhance-habit")
    async def enhance_habit(
        request: Request,
        user_id: Optional[str] = Depends(get_user_id),
        orch: Orchestrator = Depends(get_orchestrator),
    ):
        return _respond(await orch.enhance_habit(user_id, await _json_body(request)))

    @app.get("/api/ai/enhance-habit")
    def enhance_habit_info(orch: Orchestrator = Depends(get_orchestrator)):
        return orch.enhance_habit_info()

    @app.post("/api/ai/mood-analysis")
    async def mood_analysis(
        request: Request,
        user_id: Optional[str] = Depends(get_user_id),
        orch: Orchestrator = Depends(get_orchestrator),
    ):
        return _respond(await orch.analyze_mood(user_id, await _json_body(request)))

    @app.get("/api/ai/mood-analysis")
    def mood_analysis_info(orch: Orchestrator = Depends(get_orchestrator)):
        return orch.mood_analysis_info()

    @app.post("/api/ai/quick-insight")
    async def quick_insight(
        request: Request,
        user_id: Optional[str] = Depends(get_user_id),
        orch: Orchestrator = Depends(get_orchestrator),
    ):
        return _respond(await orch.quick_insight(user_id, await _json_body(request)))

    @app.post("/api/ai/recommend-habits")
    async def recommend_habits(
        request: Request,
        user_id: Optional[str] = Depends(get_user_id),
        orch: Orchestrator = Depends(get_orchestrator),
    ):
        return _respond(await orch.recommend_habits(user_id, await _json_body(request)))

    @app.get("/api/ai/cache-stats")
    def cache_stats(orch: Orchestrator = Depends(get_orchestrator)):
        return orch.cache_stats()

    return app

