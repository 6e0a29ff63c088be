from app.database import Base, build_engine
from app.models import audit, comment, proposal, submission, user  # noqa: F401

VALID_FIELDS = {
    "title": "Regional logistics network",
    "industry": "logistics",
    "company_name": "Northwind Freight",
    "summary": "Profitable regional carrier seeking a strategic buyer.",
    "description": "Twelve terminals, two hundred tractors and long-term shipper contracts across the Midwest.",
    "target_market": "Midwest mid-market shippers",
    "investment_amount": "2500000",
    "deal_type": "acquisition",
    "tags": ["logistics", "midwest"],
    "is_public": True,
}


def build_schema(url: str = "sqlite://"):
    engine = build_engine(url)
    Base.metadata.create_all(bind=engine)
    return engine
