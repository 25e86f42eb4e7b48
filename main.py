import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import configure_logging, settings
from database import db, ensure_indexes, get_db
from media import MediaStorageError
from routers import api_router

configure_logging()
logger = logging.getLogger("vidtube")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(db)
    logger.info("Video sharing backend started")
    yield


app = FastAPI(title="Video Sharing Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded media is served from the upload directory
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount(settings.MEDIA_BASE_URL, StaticFiles(directory=settings.UPLOAD_DIR), name="static")

app.include_router(api_router)


# -------------------- Error handling --------------------
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.errors(include_url=False, include_context=False)})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


@app.exception_handler(MediaStorageError)
async def media_error_handler(request: Request, exc: MediaStorageError):
    logger.exception("Media storage error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# -------------------- Basic Routes --------------------
@app.get("/")
def read_root():
    return {"message": "Video Sharing Backend is running"}


@app.get("/test")
def test_database(database: Database = Depends(get_db)):
    info = {
        "backend": "running",
        "database_connected": False,
        "database_name": settings.DATABASE_NAME,
        "collections": [],
    }
    try:
        info["collections"] = database.list_collection_names()
        info["database_connected"] = True
    except PyMongoError as e:
        info["error"] = str(e)[:100]
    return info


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", settings.PORT))
    uvicorn.run(app, host="0.0.0.0", port=port)
