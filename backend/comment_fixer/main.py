from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI
from comment_fixer.core.config import settings
from comment_fixer.api.routes import webhook
from comment_fixer.services.dispatcher import dispatcher
from comment_fixer.services.git_service import working_copy_manager
from comment_fixer.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 {settings.APP_NAME} starting on port {settings.PORT}")
    logger.info(f"📡 Webhook URL: {settings.WEBHOOK_URL}")
    logger.info(f"📋 Repository: {settings.REPO_OWNER}/{settings.REPO_NAME}")
    logger.info(f"🤖 LLM: {settings.LLM_PROVIDER} / {dispatcher.processor.decision.model_name}")
    dispatcher.start()
    try:
        yield
    finally:
        logger.info("Shutting down gracefully...")
        await dispatcher.stop()
        if settings.CLEANUP_WORKSPACE_ON_SHUTDOWN:
            working_copy_manager.cleanup()


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

# Include routers
app.include_router(webhook.router, prefix="/webhook", tags=["webhook"])


@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} - fixes code from PR comments"}


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION,
    }


def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
