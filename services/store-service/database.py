"""Database connection and session management."""
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator
import logging

from config import DATABASE_URL, SEED_DATABASE
from models import Base, Product, ProductCategory

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite (local development and tests) does not take pool sizing
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": 10,
        "max_overflow": 20,  # Overflow for burst traffic
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_timeout": 30,  # Wait max 30 seconds for a connection
        "echo_pool": False,  # Set to True for debugging connection pool
    }


# Create engine with connection pool settings
engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    if not SEED_DATABASE:
        return

    # Seed data if empty
    db = SessionLocal()
    try:
        if db.query(Product).count() == 0:
            products = [
                Product(name="MacBook Pro 14", description="M3 Pro laptop with Liquid Retina XDR display",
                        price=Decimal("1999.99"), category=ProductCategory.LAPTOPS, brand="Apple",
                        image="/images/macbook-pro-14.jpg", stock=25, sku="TS-LAP-0001", discount=5,
                        tags=["laptop", "apple"], specs=[{"label": "RAM", "value": "18GB"}]),
                Product(name="ThinkPad X1 Carbon", description="Lightweight business ultrabook",
                        price=Decimal("1499.00"), category=ProductCategory.LAPTOPS, brand="Lenovo",
                        image="/images/thinkpad-x1.jpg", stock=30, sku="TS-LAP-0002",
                        tags=["laptop", "business"]),
                Product(name="iPhone 15", description="6.1-inch smartphone with A16 Bionic",
                        price=Decimal("799.00"), category=ProductCategory.PHONES, brand="Apple",
                        image="/images/iphone-15.jpg", stock=100, sku="TS-PHN-0001",
                        tags=["phone", "apple"]),
                Product(name="Galaxy S24", description="Android flagship with 120Hz display",
                        price=Decimal("749.99"), category=ProductCategory.PHONES, brand="Samsung",
                        image="/images/galaxy-s24.jpg", stock=80, sku="TS-PHN-0002", discount=10,
                        tags=["phone", "android"]),
                Product(name="iPad Air", description="10.9-inch tablet with M2 chip",
                        price=Decimal("599.00"), category=ProductCategory.TABLETS, brand="Apple",
                        image="/images/ipad-air.jpg", stock=60, sku="TS-TAB-0001",
                        tags=["tablet"]),
                Product(name="AirPods Pro", description="Noise cancelling wireless earbuds",
                        price=Decimal("249.00"), category=ProductCategory.ACCESSORIES, brand="Apple",
                        image="/images/airpods-pro.jpg", stock=200, sku="TS-ACC-0001",
                        tags=["audio"]),
                Product(name="USB-C Charger 65W", description="GaN fast charger",
                        price=Decimal("49.99"), category=ProductCategory.ACCESSORIES, brand="Anker",
                        image="/images/anker-65w.jpg", stock=300, sku="TS-ACC-0002",
                        tags=["charger"]),
                Product(name="Galaxy Watch 6", description="Smartwatch with health tracking",
                        price=Decimal("299.99"), category=ProductCategory.WEARABLES, brand="Samsung",
                        image="/images/galaxy-watch-6.jpg", stock=75, sku="TS-WEA-0001",
                        tags=["watch"]),
            ]
            db.add_all(products)
            db.commit()
            logger.info("Seeded database with sample products")
    finally:
        db.close()
