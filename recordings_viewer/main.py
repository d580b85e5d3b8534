import os
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from recordings_viewer.dependencies import FieldHTTPException
from recordings_viewer.routes import catalog, media, notes, sessions, transcribe

logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
logger = logging.getLogger("recordings_viewer.main")

CORS_ALLOW_ORIGINS = [o.strip() for o in os.environ.get("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(title="Recordings Viewer API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(FieldHTTPException)
async def field_error_handler(request: Request, exc: FieldHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "field": exc.field})


app.include_router(catalog.router)
app.include_router(sessions.router)
app.include_router(notes.router)
app.include_router(media.router)
app.include_router(transcribe.router)


# ---------- Health check ---------- #

@app.get("/health")
async def health():
    return {"status": "ok"}
