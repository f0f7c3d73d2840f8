from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from formbuilder.config import settings
from formbuilder.database import close_backend, get_backend
from formbuilder.logger import RequestContextLogMiddleware, setup_logging
from formbuilder.routers.dashboards import router as dashboards_router
from formbuilder.routers.fields import router as fields_router
from formbuilder.routers.forms import router as forms_router
from formbuilder.routers.imports import router as imports_router
from formbuilder.routers.submissions import router as submissions_router
from formbuilder.routers.uploads import UPLOAD_DIR, router as uploads_router

setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_backend()
    yield
    close_backend()


app = FastAPI(title="Form Builder Backend (FastAPI + Mongo)", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextLogMiddleware)

app.include_router(forms_router)
app.include_router(fields_router)
app.include_router(submissions_router)
app.include_router(dashboards_router)
app.include_router(imports_router)
app.include_router(uploads_router)

# Directory is settings.UPLOAD_DIR but the endpoint is always /uploads
app.mount("/uploads", StaticFiles(directory=str(UPLOAD_DIR)), name="uploads")


@app.get("/health")
async def health():
    return {"status": "ok"}
