import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stemelix import config
from stemelix.courses.router import router as courses_router
from stemelix.database import create_indexes, manager
from stemelix.enrollment.router import router as enrollment_router
from stemelix.errors import LearningError
from stemelix.logging_config import init_logging
from stemelix.meetings.router import router as meetings_router
from stemelix.payments.router import router as payments_router
from stemelix.progress.router import router as progress_router
from stemelix.users.router import router as users_router

logger = logging.getLogger(__name__)

app = FastAPI(title="STEMelix Learning API")
init_logging(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    await manager.connect()
    await create_indexes(manager.db)


@app.on_event("shutdown")
async def shutdown_event():
    await manager.disconnect()


# ==================== ERROR HANDLERS ====================

@app.exception_handler(LearningError)
async def learning_error_handler(request: Request, exc: LearningError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal", "message": "Internal server error"},
    )


# ==================== ROUTER REGISTRATION ====================
app.include_router(users_router)
app.include_router(courses_router)
app.include_router(payments_router)
app.include_router(enrollment_router)
app.include_router(progress_router)
app.include_router(meetings_router)
# ============================================================


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "database": "connected" if manager.db is not None else "disconnected",
        "timestamp": datetime.utcnow().isoformat(),
    }
