from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetingflow.api.slack import router as slack_router
from meetingflow.api.tasks import router as tasks_router
from meetingflow.core.config import Config
from meetingflow.worker.manager import PipelineComponents, build_pipeline

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(config: Optional[Config] = None, pipeline: Optional[PipelineComponents] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Configuration; loaded from the environment when omitted
        pipeline: Pre-built components; built from `config` at startup when omitted

    Returns:
        FastAPI application
    """
    config = config or Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = pipeline is None
        if owned:
            configure_logging(config.log_level)
            app.state.pipeline = build_pipeline(config)
        else:
            app.state.pipeline = pipeline
        logger.info("🚀 Meeting pipeline API started")
        try:
            yield
        finally:
            if owned:
                await app.state.pipeline.close()
            logger.info("Server shutdown complete")

    app = FastAPI(title="Meeting Video Pipeline", lifespan=lifespan)

    # Browser access only for explicitly configured origins
    if config.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )
    app.include_router(slack_router, prefix="/api", tags=["slack"])
    app.include_router(tasks_router, prefix="/api", tags=["tasks"])

    @app.get("/")
    async def root():
        return {"message": "Meeting pipeline API is running"}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Config.from_env()
    configure_logging(settings.log_level)
    try:
        uvicorn.run(create_app(settings), host="0.0.0.0", port=8001)
    except KeyboardInterrupt:
        logging.info("FastAPI server interrupted")
