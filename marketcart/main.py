"""
Marketplace Cart Service

Hosts buyer carts for the marketplace UI: pricing, seller grouping and
background synchronization with the cart backend.
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before settings are read
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "config", ".env"))

from .core.config import settings
from .routes import cart_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Cart service starting up...")
    logger.info(f"Cart backend: {settings.gateway_base_url if settings.gateway_configured else 'disabled'}")

    yield

    logger.info("Cart service shutting down...")
    # Flush pending cart operations
    from .routes.cart import session_manager
    if session_manager:
        await session_manager.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Multi-seller cart aggregation and pricing",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cart_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "marketplace-cart",
        "sync_configured": settings.gateway_configured,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "marketcart.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
