from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rag_agent.application.api.route.agent import router as agent_router
from rag_agent.domain.orchestration.core.main_agent import AgentOrchestrator
from rag_agent.infrastructure.config.settings import Settings, get_settings
from rag_agent.infrastructure.observability.logging import metrics, setup_logging
from rag_agent.infrastructure.services import AgentServices

logger = structlog.get_logger(__name__)


def create_app(
    orchestrator: Optional[AgentOrchestrator] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    """Build the HTTP app; an injected orchestrator skips collaborator startup"""

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services: Optional[AgentServices] = None

        if orchestrator is None:
            services = AgentServices.from_settings(settings)
            await services.startup()
            app.state.orchestrator = AgentOrchestrator.from_services(services, settings)
        else:
            app.state.orchestrator = orchestrator

        logger.info("Agent API started", environment=settings.ENVIRONMENT)

        try:
            yield
        finally:
            if services is not None:
                await services.shutdown()
            app.state.orchestrator = None
            logger.info("Agent API shutdown")

    app = FastAPI(title="Retrieval Agent API", lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agent_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/metrics")
    async def get_metrics():
        """Turn counters and per-stage latency"""
        return metrics.get_metrics_summary()

    return app


def main() -> None:
    settings = get_settings()
    setup_logging(
        log_level=settings.LOG_LEVEL,
        log_format=settings.LOG_FORMAT,
        service_name=settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT
    )
    uvicorn.run(create_app(settings=settings), host=settings.API_HOST, port=settings.API_PORT)
