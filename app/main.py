"""
FastAPI Application Entry Point - Order Service
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import settings
from app.database import init_db
from app.api import admin_orders, health, orders, payos, user_orders
from app.services.payment_poller import PaymentPoller

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Order Service",
    description="Checkout, order lifecycle and PayOS payment reconciliation",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(orders.router)
app.include_router(user_orders.router)
app.include_router(admin_orders.router)
app.include_router(payos.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(app)

app.state.payment_poller = PaymentPoller()


@app.on_event("startup")
def startup_event():
    """Initialize database on startup"""
    logger.info(f"Starting {settings.SERVICE_NAME}...")
    init_db()
    logger.info("✓ Database initialized")
    logger.info(f"✓ Product Service URL: {settings.PRODUCT_SERVICE_URL}")
    logger.info(f"✓ PayOS API URL: {settings.PAYOS_API_URL}")
    logger.info(f"✓ RabbitMQ URL: {settings.RABBITMQ_URL} (events {'on' if settings.EVENTS_ENABLED else 'off'})")
    logger.info(f"✓ {settings.SERVICE_NAME} is running on port {settings.SERVICE_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop payment polling on shutdown"""
    logger.info(f"Shutting down {settings.SERVICE_NAME}...")
    await app.state.payment_poller.stop_all()
