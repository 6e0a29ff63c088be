"""
Proposal repository. Lifecycle and policy code only ever receives plain
integer ids from here; relationships are never handed out half-loaded.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, String, bindparam, cast, or_, text
from sqlalchemy.orm import Query, Session

from app.core.errors import NotFound
from app.models.proposal import Proposal

logger = logging.getLogger(__name__)

# Counters bumped with a single atomic UPDATE; they commute, so they bypass the version check.
_COUNTER_COLUMNS = frozenset({"view_count", "interest_count", "download_count"})


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class ProposalFilters:
    """Listing filters; unset fields do not narrow the query."""

    keyword: str | None = None
    industry: str | None = None
    deal_type: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    def apply(self, query: Query) -> Query:
        keyword = (self.keyword or "").strip()
        if keyword:
            pattern = _like(keyword)
            query = query.filter(
                or_(
                    Proposal.title.ilike(pattern, escape="\\"),
                    Proposal.company_name.ilike(pattern, escape="\\"),
                    Proposal.summary.ilike(pattern, escape="\\"),
                    Proposal.description.ilike(pattern, escape="\\"),
                    cast(Proposal.tags, String).ilike(pattern, escape="\\"),
                )
            )
        if self.industry:
            query = query.filter(Proposal.industry == self.industry)
        if self.deal_type:
            query = query.filter(Proposal.deal_type == self.deal_type)
        if self.min_amount is not None:
            query = query.filter(Proposal.investment_amount >= self.min_amount)
        if self.max_amount is not None:
            query = query.filter(Proposal.investment_amount <= self.max_amount)
        return query


NO_FILTERS = ProposalFilters()


def get_proposal(db: Session, proposal_id: int) -> Proposal:
    proposal = db.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFound(f"Proposal {proposal_id} not found")
    return proposal


def save_proposal(db: Session, proposal: Proposal) -> Proposal:
    db.add(proposal)
    db.flush()
    return proposal


def delete_proposal(db: Session, proposal: Proposal) -> None:
    db.delete(proposal)
    db.flush()


def increment_statistic(db: Session, proposal_id: int, column: str, now: datetime) -> None:
    if column not in _COUNTER_COLUMNS:
        raise ValueError(f"unknown proposal counter: {column}")
    db.execute(
        text(f"""
            UPDATE proposals
            SET {column} = {column} + 1,
                updated_at = :now
            WHERE id = :proposal_id
        """).bindparams(bindparam("now", type_=DateTime(timezone=True))),
        {"proposal_id": proposal_id, "now": now},
    )


def list_for_seller(
    db: Session,
    seller_id: int,
    *,
    status: str | None = None,
    filters: ProposalFilters = NO_FILTERS,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Proposal], int]:
    query = filters.apply(db.query(Proposal).filter(Proposal.seller_id == seller_id, Proposal.status != "deleted"))
    if status:
        query = query.filter(Proposal.status == status)
    total = query.count()
    rows = query.order_by(Proposal.created_at.desc(), Proposal.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_by_status(db: Session, status: str, *, offset: int = 0, limit: int = 10) -> tuple[list[Proposal], int]:
    query = db.query(Proposal).filter(Proposal.status == status)
    total = query.count()
    rows = query.order_by(Proposal.updated_at.asc(), Proposal.id.asc()).offset(offset).limit(limit).all()
    return rows, total


def list_published(db: Session, *, filters: ProposalFilters = NO_FILTERS) -> list[Proposal]:
    query = filters.apply(db.query(Proposal).filter(Proposal.status == "published"))
    return query.order_by(Proposal.published_at.desc(), Proposal.id.desc()).all()


def list_all(
    db: Session,
    *,
    status: str | None = None,
    filters: ProposalFilters = NO_FILTERS,
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[Proposal], int]:
    query = filters.apply(db.query(Proposal))
    if status:
        query = query.filter(Proposal.status == status)
    total = query.count()
    rows = query.order_by(Proposal.created_at.desc(), Proposal.id.desc()).offset(offset).limit(limit).all()
    return rows, total

