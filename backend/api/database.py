import json
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy import create_engine, Column, Integer, String, DateTime, Text, Index, UniqueConstraint
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from datetime import datetime, timezone

from scrapers.base import Listing


def utc_now():
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)

Base = declarative_base()


class ListingRecord(Base):
    """One stored listing plus its scores, keyed by (source, external_id)."""
    __tablename__ = 'listings'

    id = Column(Integer, primary_key=True)
    listing_id = Column(String, nullable=False)  # lbc_123, lacentrale_456
    source = Column(String, nullable=False, index=True)
    external_id = Column(String, nullable=False)

    # Vehicle details
    title = Column(String, nullable=False)
    price = Column(Integer)
    year = Column(Integer)
    mileage_km = Column(Integer)
    brand = Column(String)
    model = Column(String)
    city = Column(String)

    # Links
    url = Column(String, nullable=False)
    image_url = Column(String)

    # Scores
    relevance_score = Column(Integer, index=True)
    fraud_score = Column(Integer)
    risk_level = Column(String)
    red_flags = Column(Text)  # JSON array of flag dicts

    # Metadata
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('source', 'external_id', name='uq_listings_source_external_id'),
        Index('ix_listings_updated_at', 'updated_at'),
    )

    def to_dict(self):
        return {
            'id': self.listing_id,
            'external_id': self.external_id,
            'source': self.source,
            'title': self.title,
            'price': self.price,
            'year': self.year,
            'mileage_km': self.mileage_km,
            'brand': self.brand,
            'model': self.model,
            'city': self.city,
            'url': self.url,
            'image_url': self.image_url,
            'relevance_score': self.relevance_score,
            'fraud_score': self.fraud_score,
            'risk_level': self.risk_level,
            'red_flags': json.loads(self.red_flags) if self.red_flags else [],
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


def _record_values(listing: Listing) -> dict:
    data = listing.to_dict()
    return {
        'listing_id': listing.id,
        'title': listing.title,
        'price': listing.price,
        'year': listing.year,
        'mileage_km': listing.mileage_km,
        'brand': listing.brand,
        'model': listing.model,
        'city': listing.city,
        'url': listing.url,
        'image_url': listing.image_url,
        'relevance_score': listing.relevance_score,
        'fraud_score': listing.fraud_score,
        'risk_level': listing.risk_level,
        'red_flags': json.dumps(data['red_flags'], ensure_ascii=False),
    }


def save_listings(db: Session, listings: Iterable[Listing]) -> dict:
    """
    Upsert listings by (source, external_id).

    A re-search replaces the stored values with the new instance's values.

    Returns:
        {'new': n, 'updated': n}
    """
    new = updated = 0
    for listing in listings:
        record = db.query(ListingRecord).filter(
            ListingRecord.source == listing.source,
            ListingRecord.external_id == listing.external_id,
        ).first()
        values = _record_values(listing)
        if record is None:
            db.add(ListingRecord(source=listing.source, external_id=listing.external_id, **values))
            new += 1
        else:
            for key, value in values.items():
                setattr(record, key, value)
            updated += 1
    db.commit()
    return {'new': new, 'updated': updated}


def query_listings(
    db: Session,
    source: Optional[str] = None,
    min_relevance: Optional[int] = None,
    limit: int = 100,
) -> List[ListingRecord]:
    """Stored listings, best relevance first."""
    query = db.query(ListingRecord)
    if source:
        query = query.filter(ListingRecord.source == source)
    if min_relevance is not None:
        query = query.filter(ListingRecord.relevance_score >= min_relevance)
    return query.order_by(
        ListingRecord.relevance_score.desc(),
        ListingRecord.fraud_score.asc(),
        ListingRecord.listing_id.asc(),
    ).limit(limit).all()


# Database setup - import settings for database URL
from api.config import settings

engine = create_engine(
    settings.database_url,
    echo=False,
    pool_pre_ping=True,    # Verify connections before use (handles stale connections)
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def init_db():
    url = make_url(settings.database_url)
    if url.drivername.startswith('sqlite') and url.database and url.database != ':memory:':
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
