from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from fulfillment.config import get_settings
from fulfillment.database import engine, Base
from fulfillment.api import customers, health, inventory, orders, products, reports

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    logger.info("Starting up application...")

    # Create database tables
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")

    yield

    logger.info("Shutting down application...")


app = FastAPI(
    title="Order Fulfillment Core",
    description="""
    Transactional order fulfillment with:

    - **Order Placement**: stock reservation, order, items and sales history in one transaction
    - **Inventory Ledger**: row-level locking with blocking, fail-fast and skip-locked policies
    - **Sales History**: append-only purchase-time snapshots for reporting
    - **Reports**: read-only revenue, best-seller, customer and search queries
    - **Recommendations**: products sharing a category and author with past purchases

    ## Concurrency
    Products in an order are locked in ascending id order with `SELECT ... FOR UPDATE`,
    so concurrent orders can never oversell or deadlock on each other.
    """,
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(products.router, prefix="/api/v1")
app.include_router(customers.router, prefix="/api/v1")
app.include_router(orders.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "name": "Order Fulfillment Core",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health"
    }
