import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.identity import current_identity, require_admin
from app.logic.identity import Identity
from app.services import proposal_workflow
from app.services.serializers import page_envelope, serialize_proposal
from app.utils.pagination import resolve_page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/proposals", tags=["admin"])


class ApproveRequest(BaseModel):
    comments: Optional[str] = Field(default=None, max_length=1000)


class RejectRequest(BaseModel):
    reason: str = Field(max_length=1000)


@router.get("/pending")
def pending_review(
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(require_admin),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total = proposal_workflow.list_pending_review(db, identity, offset=offset, limit=limit)
    return JSONResponse(page_envelope([serialize_proposal(p, identity) for p in rows], total, page, limit))


# Non-admin callers here are refused by the lifecycle actor check.

@router.post("/{proposal_id}/approve")
def approve(
    proposal_id: int,
    body: Optional[ApproveRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    comments = body.comments if body else None
    proposal = proposal_workflow.approve(db, identity, proposal_id, comments)
    return JSONResponse({"status": "success", "data": serialize_proposal(proposal, identity)})


@router.post("/{proposal_id}/reject")
def reject(
    proposal_id: int,
    body: RejectRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.reject(db, identity, proposal_id, body.reason)
    return JSONResponse({"status": "success", "data": serialize_proposal(proposal, identity)})


@router.post("/{proposal_id}/approve-delete")
def approve_delete(
    proposal_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    proposal = proposal_workflow.approve_delete(db, identity, proposal_id)
    return JSONResponse({"status": "success", "data": serialize_proposal(proposal, identity)})
