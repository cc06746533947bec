from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from database import engine, Base
from bootstrap import ensure_runtime_defaults
from routers import admin, auth_profile, event_manage, notifications, public, registrations

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Bonhomie API", version="1.0.0")
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


# ==================== STARTUP ====================
@app.on_event("startup")
async def startup_event():
    ensure_runtime_defaults()
    logger.info("Bonhomie API started")


api_router.include_router(public.router)
api_router.include_router(auth_profile.router)
api_router.include_router(registrations.router)
api_router.include_router(event_manage.router)
api_router.include_router(admin.router)
api_router.include_router(notifications.router)

# Include router and add middleware
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)
