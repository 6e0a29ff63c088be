"""Optimistic locking: two sessions racing on the same proposal or submission.

Run with:  pytest tests/test_concurrency.py -v
"""
import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import AlreadySigned, ConflictError, InvalidStateTransition
from app.database import build_session_factory
from app.logic.identity import Identity
from app.models.proposal import Proposal
from app.models.submission import Submission
from app.models.user import User
from app.repositories import submissions_repo
from app.scripts import recompute_engagement
from app.services import proposal_workflow, submission_workflow
from app.services.transactions import run_transition
from tests.helpers import VALID_FIELDS, build_schema


@pytest.fixture
def two_sessions(tmp_path):
    engine = build_schema(f"sqlite:///{tmp_path / 'race.db'}")
    factory = build_session_factory(engine)
    first, second = factory(), factory()
    yield first, second
    first.close()
    second.close()
    engine.dispose()


def _pending_proposal(db):
    seller = User(email="seller@race.example", role="seller", display_name="Seller")
    admin = User(email="admin@race.example", role="admin", display_name="Admin")
    db.add_all([seller, admin])
    db.commit()
    seller_id = Identity(id=seller.id, role="seller")
    admin_id = Identity(id=admin.id, role="admin")
    proposal = proposal_workflow.create(db, seller_id, dict(VALID_FIELDS))
    proposal_workflow.submit(db, seller_id, proposal.id)
    return proposal.id, admin_id


def test_second_approve_sees_the_winner(two_sessions):
    first, second = two_sessions
    proposal_id, admin = _pending_proposal(first)

    # The loser read the row before the winner committed.
    assert second.get(Proposal, proposal_id).status == "pending_review"
    proposal_workflow.approve(first, admin, proposal_id, "first")

    with pytest.raises(InvalidStateTransition):
        proposal_workflow.approve(second, admin, proposal_id, "second")

    second.expire_all()
    stored = second.get(Proposal, proposal_id)
    assert stored.status == "approved"
    assert stored.review_comment == "first"


def test_conflict_surfaces_when_retries_are_exhausted(two_sessions):
    first, second = two_sessions
    proposal_id, admin = _pending_proposal(first)

    stale = second.get(Proposal, proposal_id)
    proposal_workflow.approve(first, admin, proposal_id, "first")

    def operation():
        stale.review_comment = "overwritten"
        second.flush()
        return stale

    with pytest.raises(ConflictError):
        run_transition(second, operation, label="race", retries=0)

    first.expire_all()
    assert first.get(Proposal, proposal_id).review_comment == "first"


# ── buyer engagement races ─────────────────────────────────────────────────────

def _published_with_buyer(db):
    proposal_id, admin = _pending_proposal(db)
    seller = Identity(id=db.get(Proposal, proposal_id).seller_id, role="seller")
    buyer_row = User(email="buyer@race.example", role="buyer", display_name="Buyer")
    db.add(buyer_row)
    db.commit()
    proposal_workflow.approve(db, admin, proposal_id, "ok")
    proposal_workflow.publish(db, seller, proposal_id)
    return proposal_id, Identity(id=buyer_row.id, role="buyer")


def test_concurrent_first_contact_shares_one_submission(two_sessions, monkeypatch):
    first, second = two_sessions
    proposal_id, buyer = _published_with_buyer(first)
    real_find = submissions_repo.find_submission
    raced = []

    def find_then_lose_the_race(db, proposal_id, buyer_id):
        # The second session looks first and sees nothing; the first session
        # opens the submission and commits before the second one inserts.
        if db is second and not raced:
            raced.append(True)
            submission_workflow.record_view(first, buyer, proposal_id)
            return None
        return real_find(db, proposal_id, buyer_id)

    monkeypatch.setattr(submissions_repo, "find_submission", find_then_lose_the_race)

    submission = submission_workflow.record_view(second, buyer, proposal_id)

    first.expire_all()
    rows = first.query(Submission).filter(Submission.proposal_id == proposal_id).all()
    assert [row.id for row in rows] == [submission.id]
    assert rows[0].view_count == 2
    assert rows[0].status == "viewed"
    assert first.get(Proposal, proposal_id).view_count == 2


def test_concurrent_nda_signature_keeps_the_first(two_sessions):
    first, second = two_sessions
    proposal_id, buyer = _published_with_buyer(first)
    submission_id = submission_workflow.record_view(first, buyer, proposal_id).id

    # The second session holds a copy read before the first signature landed.
    assert second.get(Submission, submission_id).nda_signed_at is None
    submission_workflow.sign_nda(
        first, buyer, submission_id,
        signature="First Tab", agreed=True, ip_address="10.0.0.1", user_agent="pytest",
    )

    with pytest.raises(AlreadySigned):
        submission_workflow.sign_nda(
            second, buyer, submission_id,
            signature="Second Tab", agreed=True, ip_address="10.0.0.2", user_agent="pytest",
        )

    first.expire_all()
    stored = first.get(Submission, submission_id)
    assert stored.nda_signature == "First Tab"
    assert stored.status == "nda_signed"
    signings = [i for i in stored.interactions if i.event_type == "status_change" and i.details["to"] == "nda_signed"]
    assert len(signings) == 1


def test_stale_submission_write_surfaces_as_conflict(two_sessions):
    first, second = two_sessions
    proposal_id, buyer = _published_with_buyer(first)
    submission_id = submission_workflow.record_view(first, buyer, proposal_id).id

    stale = second.get(Submission, submission_id)
    submission_workflow.record_download(first, buyer, proposal_id, "teaser.pdf")

    def operation():
        stale.status = "interested"
        second.flush()
        return stale

    with pytest.raises(ConflictError):
        run_transition(second, operation, label="race", retries=0)

    first.expire_all()
    stored = first.get(Submission, submission_id)
    assert stored.status == "viewed"
    assert stored.download_count == 1


def test_unrelated_integrity_error_is_not_a_conflict(two_sessions):
    first, _ = two_sessions
    first.add(User(email="dup@race.example", role="buyer", display_name="One"))
    first.commit()

    def operation():
        first.add(User(email="dup@race.example", role="buyer", display_name="Two"))
        first.flush()

    with pytest.raises(IntegrityError):
        run_transition(first, operation, label="dup-user")


def test_backfill_replays_a_batch_written_mid_run(two_sessions, monkeypatch):
    first, second = two_sessions
    proposal_id, buyer = _published_with_buyer(first)
    submission_id = submission_workflow.record_view(first, buyer, proposal_id).id
    first.query(Submission).update({Submission._engagement_score: 0}, synchronize_session=False)
    first.commit()

    real_refresh = recompute_engagement.refresh_statistics
    raced = []

    def refresh_during_request(submission):
        if not raced:
            raced.append(True)
            submission_workflow.record_view(first, buyer, proposal_id)
        return real_refresh(submission)

    monkeypatch.setattr(recompute_engagement, "refresh_statistics", refresh_during_request)

    # The replayed batch finds the request's freshly scored row.
    assert recompute_engagement.recompute_all(second) == {"scanned": 1, "changed": 0}

    first.expire_all()
    stored = first.get(Submission, submission_id)
    assert stored.view_count == 2
    assert stored.engagement_score > 0
