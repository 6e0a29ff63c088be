import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies.identity import current_identity
from app.logic.identity import Identity
from app.logic.nda_gate import nda_template
from app.services import submission_workflow
from app.services.analytics import seller_analytics
from app.services.serializers import page_envelope, serialize_comment, serialize_submission
from app.utils.pagination import resolve_page

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["submissions"])


class SignNdaRequest(BaseModel):
    signature: str
    agreed: bool = False


class ContactRequest(BaseModel):
    message: Optional[str] = None


class ContactCard(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None


class ApproveContactRequest(BaseModel):
    seller_contact: Optional[ContactCard] = None


class NegotiateRequest(BaseModel):
    note: Optional[str] = None


class CloseRequest(BaseModel):
    status: str = Field(description="deal_closed, rejected or archived")
    reason: Optional[str] = None


class CommentRequest(BaseModel):
    content: str
    type: str = Field(description="question, clarification, concern, interest or feedback")
    requires_response: bool = False
    is_private: bool = False


class ReplyRequest(BaseModel):
    content: str


def _ok(data, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"status": "success", "data": data}, status_code=status_code)


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/nda-template")
def get_nda_template() -> JSONResponse:
    return _ok(nda_template())


@router.get("/submissions/{submission_id}")
def get_submission(
    submission_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.get_for_identity(db, identity, submission_id)
    return _ok(serialize_submission(submission, include_interactions=True))


@router.post("/submissions/{submission_id}/sign-nda")
def sign_nda(
    submission_id: int,
    body: SignNdaRequest,
    request: Request,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.sign_nda(
        db, identity, submission_id,
        signature=body.signature,
        agreed=body.agreed,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _ok(serialize_submission(submission))


@router.post("/submissions/{submission_id}/request-contact")
def request_contact(
    submission_id: int,
    body: Optional[ContactRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    message = body.message if body else None
    submission = submission_workflow.request_contact(db, identity, submission_id, message)
    return _ok(serialize_submission(submission))


@router.post("/submissions/{submission_id}/approve-contact")
def approve_contact(
    submission_id: int,
    body: Optional[ApproveContactRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    card = body.seller_contact.model_dump() if body and body.seller_contact else None
    submission = submission_workflow.approve_contact(db, identity, submission_id, card)
    return _ok(serialize_submission(submission))


@router.post("/submissions/{submission_id}/negotiate")
def negotiate(
    submission_id: int,
    body: Optional[NegotiateRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    note = body.note if body else None
    submission = submission_workflow.start_negotiation(db, identity, submission_id, note)
    return _ok(serialize_submission(submission))


@router.post("/submissions/{submission_id}/close")
def close_submission(
    submission_id: int,
    body: CloseRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    submission = submission_workflow.close(db, identity, submission_id, body.status, body.reason)
    return _ok(serialize_submission(submission))


@router.post("/submissions/{submission_id}/comments")
def add_comment(
    submission_id: int,
    body: CommentRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    comment = submission_workflow.add_comment(
        db, identity, submission_id,
        content=body.content,
        comment_type=body.type,
        requires_response=body.requires_response,
        is_private=body.is_private,
    )
    return _ok(serialize_comment(comment), status_code=201)


@router.get("/submissions/{submission_id}/comments")
def list_comments(
    submission_id: int,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total, unanswered = submission_workflow.list_comments(
        db, identity, submission_id, offset=offset, limit=limit,
    )
    envelope = page_envelope([serialize_comment(c) for c in rows], total, page, limit)
    envelope["unanswered"] = unanswered
    return JSONResponse(envelope)


@router.post("/comments/{comment_id}/reply")
def reply_to_comment(
    comment_id: int,
    body: ReplyRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    answer = submission_workflow.reply_to_comment(db, identity, comment_id, body.content)
    return _ok(serialize_comment(answer), status_code=201)


@router.get("/buyer/submissions")
def buyer_submissions(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total = submission_workflow.list_for_buyer(db, identity, status=status, offset=offset, limit=limit)
    return JSONResponse(page_envelope([serialize_submission(s) for s in rows], total, page, limit))


@router.get("/seller/submissions")
def seller_submissions(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    page, limit, offset = resolve_page(page, limit)
    rows, total = submission_workflow.list_for_seller(db, identity, status=status, offset=offset, limit=limit)
    return JSONResponse(page_envelope([serialize_submission(s) for s in rows], total, page, limit))


@router.get("/seller/analytics")
def analytics(
    proposal_id: Optional[int] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(current_identity),
) -> JSONResponse:
    return _ok(seller_analytics(db, identity, proposal_id))
