"""
Work Order Hub - Main Server

Signed work order processing API. Routes are organized in /routes/.
"""

from dotenv import load_dotenv
load_dotenv()  # Load .env file before any os.environ calls

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from contextlib import asynccontextmanager
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# ==================== ROUTERS ====================
from routes import signed

# ==================== SERVICES ====================
from services.signed import config as signed_config
from services.signed.file_storage import LocalFileStorage
from services.signed.labels import GmailLabelPort
from services.signed.ocr_client import SignedOcrClient
from services.signed.pipeline import SignedDocumentPipeline
from services.signed.stores import MongoReviewItemStore, MongoWorkOrderStore, create_signed_indexes

# ==================== DATABASE ====================
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "work_order_hub")

db = None
mongo_client = None


# ==================== LIFESPAN ====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    global db, mongo_client

    # Startup
    logger.info("Starting Work Order Hub...")

    # Connect to MongoDB
    mongo_client = AsyncIOMotorClient(MONGO_URL)
    db = mongo_client[DB_NAME]

    # Wire the signed pipeline
    signed.set_dependencies(build_pipeline(db))

    # Create indexes
    await create_signed_indexes(
        db[signed_config.WORK_ORDERS_COLLECTION],
        db[signed_config.REVIEW_ITEMS_COLLECTION],
    )

    logger.info("Work Order Hub started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Work Order Hub...")
    if mongo_client:
        mongo_client.close()


def build_pipeline(database) -> SignedDocumentPipeline:
    """Pipeline backed by MongoDB, local file storage and the OCR service."""
    label_port = None
    if signed_config.GMAIL_ACCESS_TOKEN:
        label_port = GmailLabelPort(signed_config.GMAIL_ACCESS_TOKEN)
    else:
        logger.info("GMAIL_ACCESS_TOKEN not set, message labels will not be updated")

    return SignedDocumentPipeline(
        work_orders=MongoWorkOrderStore(database[signed_config.WORK_ORDERS_COLLECTION]),
        review_items=MongoReviewItemStore(database[signed_config.REVIEW_ITEMS_COLLECTION]),
        storage=LocalFileStorage(),
        ocr_client=SignedOcrClient(),
        label_port=label_port,
    )


# ==================== APP SETUP ====================
app = FastAPI(
    title="Work Order Hub",
    description="Signed work order matching and disposition",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API Router with /api prefix
api_router = APIRouter(prefix="/api")
api_router.include_router(signed.router)
app.include_router(api_router)


# ==================== ROOT ENDPOINTS ====================
@app.get("/")
async def root():
    return {
        "service": "Work Order Hub",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/api/health")
async def health():
    return {
        "status": "healthy",
        "service": "work-order-hub"
    }
