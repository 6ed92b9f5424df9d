import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mixnotes.config import CORS_ORIGINS, LOG_LEVEL
from mixnotes.database import Base, engine
from mixnotes.services.errors import ServiceError
from mixnotes.api.auth import router as auth_router
from mixnotes.api.projects import router as projects_router
from mixnotes.api.tracks import router as tracks_router
from mixnotes.api.comments import router as comments_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mixnotes Feedback API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

app.include_router(auth_router, tags=["Authentication"])
app.include_router(projects_router, tags=["Projects"])
app.include_router(tracks_router, tags=["Tracks"])
app.include_router(comments_router, tags=["Comments"])


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500 or exc.status_code == 409:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


@app.get("/")
def root():
    return {"message": "Backend is running!"}
