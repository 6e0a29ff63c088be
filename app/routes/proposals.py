import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.identity import current_identity
from app.logic.identity import Identity
from app.services import proposal_workflow, submission_workflow
from app.services.serializers import page_envelope, serialize_buyer, serialize_proposal, serialize_submission
from app.utils.pagination import resolve_page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proposals", tags=["proposals"])


class ProposalFields(BaseModel):
    title: Optional[str] = None
    industry: Optional[str] = None
    company_name: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    target_market: Optional[str] = None
    investment_amount: Optional[Decimal] = None
    deal_type: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None
    allowed_buyer_ids: Optional[List[int]] = None


class DeleteRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class SendToBuyersRequest(BaseModel):
    buyer_ids: List[int]


class DownloadRequest(BaseModel):
    document: Optional[str] = None


class QuestionRequest(BaseModel):
    question: str


class InterestRequest(BaseModel):
    interest_level: str
    comment: Optional[str] = None
    capacity_min: Optional[Decimal] = None
    capacity_max: Optional[Decimal] = None
    capacity_currency: Optional[str] = None


def _ok(data, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"status": "success", "data": data}, status_code=status_code)


@router.post("")
def create_proposal(
    body: ProposalFields,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.create(db, identity, body.model_dump(exclude_none=True))
    return _ok(serialize_proposal(proposal, identity), status_code=201)


@router.get("")
def list_proposals(
    status: Optional[str] = None,
    industry: Optional[str] = None,
    keyword: Optional[str] = None,
    deal_type: Optional[str] = None,
    min_amount: Optional[Decimal] = Query(default=None, ge=0),
    max_amount: Optional[Decimal] = Query(default=None, ge=0),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total = proposal_workflow.list_for_identity(
        db, identity,
        status=status,
        industry=industry,
        keyword=keyword,
        deal_type=deal_type,
        min_amount=min_amount,
        max_amount=max_amount,
        offset=offset,
        limit=limit,
    )
    return JSONResponse(page_envelope([serialize_proposal(p, identity) for p in rows], total, page, limit))


@router.get("/buyers/list")
def buyer_directory(
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total = proposal_workflow.buyer_directory(db, identity, search=search, offset=offset, limit=limit)
    return JSONResponse(page_envelope([serialize_buyer(u) for u in rows], total, page, limit))


@router.get("/{proposal_id}")
def get_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.get_visible(db, identity, proposal_id)
    return _ok(serialize_proposal(proposal, identity))


@router.put("/{proposal_id}")
def update_proposal(
    proposal_id: int,
    body: ProposalFields,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.update(db, identity, proposal_id, body.model_dump(exclude_unset=True))
    return _ok(serialize_proposal(proposal, identity))


@router.delete("/{proposal_id}")
def delete_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal_workflow.delete_draft(db, identity, proposal_id)
    return _ok({"id": proposal_id, "deleted": True})


@router.post("/{proposal_id}/submit")
def submit_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.submit(db, identity, proposal_id)
    return _ok(serialize_proposal(proposal, identity))


@router.post("/{proposal_id}/publish")
def publish_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.publish(db, identity, proposal_id)
    return _ok(serialize_proposal(proposal, identity))


@router.post("/{proposal_id}/archive")
def archive_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.archive(db, identity, proposal_id)
    return _ok(serialize_proposal(proposal, identity))


@router.post("/{proposal_id}/request-delete")
def request_delete(
    proposal_id: int,
    body: DeleteRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.request_delete(db, identity, proposal_id, body.reason)
    return _ok(serialize_proposal(proposal, identity))


@router.post("/{proposal_id}/send-to-buyers")
def send_to_buyers(
    proposal_id: int,
    body: SendToBuyersRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    created = proposal_workflow.send_to_buyers(db, identity, proposal_id, body.buyer_ids)
    return _ok({"created": [serialize_submission(s) for s in created]}, status_code=201)


# ── Buyer interactions ────────────────────────────────────────────────────────

@router.post("/{proposal_id}/view")
def view_proposal(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.record_view(db, identity, proposal_id)
    return _ok(serialize_submission(submission))


@router.post("/{proposal_id}/download")
def download_proposal(
    proposal_id: int,
    body: Optional[DownloadRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    document = body.document if body else None
    submission = submission_workflow.record_download(db, identity, proposal_id, document)
    return _ok(serialize_submission(submission))


@router.post("/{proposal_id}/questions")
def ask_question(
    proposal_id: int,
    body: QuestionRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.record_question(db, identity, proposal_id, body.question)
    return _ok(serialize_submission(submission))


@router.post("/{proposal_id}/interest")
def express_interest(
    proposal_id: int,
    body: InterestRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.record_interest(db, identity, proposal_id, body.model_dump())
    return _ok(serialize_submission(submission))
