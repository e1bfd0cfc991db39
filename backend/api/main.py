from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import List, Optional
import asyncio
import logging

from api.config import settings
from api.database import get_db, init_db, save_listings, query_listings, engine
from api.logging_setup import configure_logging
from scrapers.base import SearchQuery
from scrapers.manager import ScraperManager, analyze_listing

configure_logging(settings)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates the scraper manager on startup and closes it on shutdown.
    """
    # Startup
    logger.info("=" * 60)
    logger.info("Vehicle Search Backend Starting Up")
    logger.info("=" * 60)
    logger.info(f"Log file: {settings.log_file}")
    logger.info(f"Database: {settings.database_url}")
    logger.info(f"Fetch backend: {settings.fetch_backend}")
    init_db()
    logger.info("Database initialized successfully")
    app.state.manager = ScraperManager(settings)
    logger.info("Backend ready to accept requests")

    yield  # Application runs here

    # Shutdown
    logger.info("Vehicle Search Backend Shutting Down")
    try:
        await asyncio.wait_for(app.state.manager.aclose(), timeout=5.0)
    except asyncio.TimeoutError:
        logger.warning("Fetcher cleanup timed out, forcing exit")
    engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Vehicle Search API",
    version="1.0.0",
    lifespan=lifespan
)

# Note: allow_credentials must be False when allow_origins is ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_manager(request: Request) -> ScraperManager:
    return request.app.state.manager


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    """Return empty response for favicon requests"""
    return Response(status_code=204)


# Pydantic models for API requests
class SearchRequest(BaseModel):
    brand: str = Field(..., min_length=1)
    max_price: int = Field(..., ge=0)
    model: Optional[str] = None
    min_price: Optional[int] = Field(None, ge=0)
    min_year: Optional[int] = None
    max_mileage: Optional[int] = Field(None, ge=0)
    zip_code: Optional[str] = None


class ListingFields(BaseModel):
    title: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    transmission: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    market_min: Optional[float] = None
    market_max: Optional[float] = None
    mileage_km: Optional[int] = None
    year: Optional[int] = None
    location: Optional[str] = None
    contact_info: Optional[str] = None
    photos_count: Optional[int] = None
    url: Optional[str] = None
    source: Optional[str] = None
    has_history: bool = False


class AnalyzeRequest(ListingFields):
    peers: List[ListingFields] = []


@app.get("/")
async def root():
    return {"message": "Vehicle Search API", "version": "1.0.0"}


@app.get("/api/scrapers")
async def list_scrapers(manager: ScraperManager = Depends(get_manager)):
    """List all configured sources and their implementation status"""
    return {
        "scrapers": manager.list_scrapers(),
        "implemented": manager.get_implemented_scrapers()
    }


@app.post("/api/search")
async def search(
    request: SearchRequest,
    manager: ScraperManager = Depends(get_manager),
    db: Session = Depends(get_db)
):
    """Run a search across every configured source and store the results"""
    try:
        query = SearchQuery(**request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    result = await manager.search(query)
    if result.listings:
        stored = save_listings(db, result.listings)
        logger.info(f"Stored listings: {stored['new']} new, {stored['updated']} updated")
    return result.to_dict()


@app.post("/api/analyze")
async def analyze(request: AnalyzeRequest):
    """Fraud analysis for one listing, optionally against peer listings"""
    fields = request.model_dump(exclude={'peers'})
    peers = [p.model_dump() for p in request.peers]
    result = analyze_listing(
        fields,
        peers=peers,
        similarity_threshold=settings.dedup_title_similarity,
        price_delta=settings.dedup_price_delta,
    )
    return result.to_dict()


@app.get("/api/listings")
async def get_listings(
    source: Optional[str] = Query(None, description="Filter by source name"),
    min_relevance: Optional[int] = Query(None, ge=0, le=100),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db)
):
    """Stored listings, best relevance first"""
    records = query_listings(db, source=source, min_relevance=min_relevance, limit=limit)
    return [r.to_dict() for r in records]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
