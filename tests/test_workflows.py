"""Service-layer tests against an in-memory SQLite schema.

Run with:  pytest tests/test_workflows.py -v
"""
from decimal import Decimal

import pytest

from app.core.errors import AuthorizationDenied, InvalidStateTransition, NdaRequired, NotFound, ValidationFailed
from app.models.audit import AuditLog
from app.models.comment import SubmissionComment
from app.models.proposal import Proposal
from app.models.submission import Submission
from app.scripts.recompute_engagement import recompute_all
from app.services import proposal_workflow, submission_workflow
from app.services.analytics import seller_analytics
from tests.helpers import VALID_FIELDS


def _published(db, users, **overrides):
    fields = dict(VALID_FIELDS)
    fields.update(overrides)
    proposal = proposal_workflow.create(db, users["seller"], fields)
    proposal_workflow.submit(db, users["seller"], proposal.id)
    proposal_workflow.approve(db, users["admin"], proposal.id, "looks good")
    return proposal_workflow.publish(db, users["seller"], proposal.id)


def _audit_actions(db, resource_type):
    rows = db.query(AuditLog).filter(AuditLog.resource_type == resource_type).order_by(AuditLog.id).all()
    return [row.action for row in rows]


class TestProposalWorkflow:
    def test_lifecycle_is_persisted_and_audited(self, db, users):
        proposal = _published(db, users)
        db.expire_all()
        stored = db.get(Proposal, proposal.id)
        assert stored.status == "published"
        assert stored.review_action == "approved"
        assert stored.version == 4
        assert _audit_actions(db, "Proposal") == ["create", "submit_for_review", "approve", "publish"]

    def test_failed_transition_leaves_row_untouched(self, db, users):
        proposal = proposal_workflow.create(db, users["seller"], {"title": "Tiny"})
        with pytest.raises(ValidationFailed):
            proposal_workflow.submit(db, users["seller"], proposal.id)
        db.expire_all()
        assert db.get(Proposal, proposal.id).status == "draft"
        assert _audit_actions(db, "Proposal") == ["create"]

    def test_missing_proposal(self, db, users):
        with pytest.raises(NotFound):
            proposal_workflow.submit(db, users["seller"], 404)

    def test_draft_is_hard_deleted(self, db, users):
        proposal = proposal_workflow.create(db, users["seller"], dict(VALID_FIELDS))
        proposal_workflow.delete_draft(db, users["seller"], proposal.id)
        assert db.get(Proposal, proposal.id) is None

    def test_delete_request_blocked_by_active_deal(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        submission_workflow.sign_nda(
            db, users["buyer"], submission.id,
            signature="Bea Buyer", agreed=True, ip_address="127.0.0.1", user_agent="pytest",
        )
        proposal_workflow.request_delete(db, users["seller"], proposal.id, "sold")
        with pytest.raises(InvalidStateTransition):
            proposal_workflow.approve_delete(db, users["admin"], proposal.id)

        submission_workflow.close(db, users["seller"], submission.id, "rejected", "not a fit")
        deleted = proposal_workflow.approve_delete(db, users["admin"], proposal.id)
        assert deleted.status == "deleted"

    def test_buyer_listing_respects_visibility(self, db, users):
        public = _published(db, users, title="Public listing here")
        private = _published(db, users, title="Private listing here", is_public=False)
        rows, total = proposal_workflow.list_for_identity(
            db, users["buyer"], status=None, industry=None, offset=0, limit=10,
        )
        assert [p.id for p in rows] == [public.id]
        assert total == 1

        proposal_workflow.send_to_buyers(db, users["seller"], private.id, [users["buyer"].id])
        rows, total = proposal_workflow.list_for_identity(
            db, users["buyer"], status=None, industry=None, offset=0, limit=10,
        )
        assert {p.id for p in rows} == {public.id, private.id}

    def test_pending_queue_is_admin_only(self, db, users):
        proposal = proposal_workflow.create(db, users["seller"], dict(VALID_FIELDS))
        proposal_workflow.submit(db, users["seller"], proposal.id)
        rows, total = proposal_workflow.list_pending_review(db, users["admin"], offset=0, limit=10)
        assert [p.id for p in rows] == [proposal.id]
        with pytest.raises(AuthorizationDenied):
            proposal_workflow.list_pending_review(db, users["seller"], offset=0, limit=10)


class TestSendToBuyers:
    def test_creates_sent_submissions_once(self, db, users):
        proposal = _published(db, users, is_public=False)
        created = proposal_workflow.send_to_buyers(
            db, users["seller"], proposal.id, [users["buyer"].id, users["buyer2"].id],
        )
        assert sorted(s.buyer_id for s in created) == sorted([users["buyer"].id, users["buyer2"].id])
        assert all(s.status == "sent" for s in created)

        again = proposal_workflow.send_to_buyers(db, users["seller"], proposal.id, [users["buyer"].id])
        assert again == []
        assert db.query(Submission).count() == 2

    def test_rejects_non_buyers(self, db, users):
        proposal = _published(db, users)
        with pytest.raises(ValidationFailed):
            proposal_workflow.send_to_buyers(db, users["seller"], proposal.id, [users["other_seller"].id])

    def test_other_seller_cannot_send(self, db, users):
        proposal = _published(db, users)
        with pytest.raises(AuthorizationDenied):
            proposal_workflow.send_to_buyers(db, users["other_seller"], proposal.id, [users["buyer"].id])


class TestEngagement:
    def test_first_view_opens_submission_and_counts(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        submission_workflow.record_view(db, users["buyer"], proposal.id)
        submission_workflow.record_interest(db, users["buyer"], proposal.id, {"interest_level": "high"})

        db.expire_all()
        stored = db.get(Submission, submission.id)
        assert stored.status == "interested"
        assert stored.view_count == 2
        assert db.query(Submission).count() == 1
        counters = db.get(Proposal, proposal.id)
        assert (counters.view_count, counters.interest_count) == (2, 1)

    def test_private_proposal_is_hidden(self, db, users):
        proposal = _published(db, users, is_public=False)
        with pytest.raises(AuthorizationDenied):
            submission_workflow.record_view(db, users["buyer"], proposal.id)
        assert db.query(Submission).count() == 0

    def test_sellers_cannot_act_as_buyers(self, db, users):
        proposal = _published(db, users)
        with pytest.raises(AuthorizationDenied):
            submission_workflow.record_view(db, users["other_seller"], proposal.id)

    def test_contact_exchange_uses_profiles(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        with pytest.raises(NdaRequired):
            submission_workflow.request_contact(db, users["buyer"], submission.id, None)

        submission_workflow.sign_nda(
            db, users["buyer"], submission.id,
            signature="Bea Buyer", agreed=True, ip_address="127.0.0.1", user_agent="pytest",
        )
        submission_workflow.request_contact(db, users["buyer"], submission.id, "Let's talk")
        result = submission_workflow.approve_contact(db, users["seller"], submission.id, {"phone": "+1-555-0999"})

        assert result.status == "contact_exchanged"
        contacts = result.exchanged_contacts
        assert contacts["buyer_contact"]["email"] == "buyer@capital.example"
        assert contacts["seller_contact"]["company"] == "Northwind Freight"
        assert contacts["seller_contact"]["phone"] == "+1-555-0999"
        assert _audit_actions(db, "Submission") == ["view", "sign_nda", "request_contact", "approve_contact"]

    def test_other_buyer_cannot_read_submission(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        with pytest.raises(AuthorizationDenied):
            submission_workflow.get_for_identity(db, users["buyer2"], submission.id)
        assert submission_workflow.get_for_identity(db, users["seller"], submission.id).id == submission.id


class TestComments:
    def test_question_endpoint_opens_an_answerable_comment(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_question(db, users["buyer"], proposal.id, "Any customer churn?")
        assert submission.status == "sent"

        rows, total, unanswered = submission_workflow.list_comments(
            db, users["seller"], submission.id, offset=0, limit=10,
        )
        assert (total, unanswered) == (1, 1)
        question = rows[0]
        assert (question.comment_type, question.content) == ("question", "Any customer churn?")

        answer = submission_workflow.reply_to_comment(db, users["seller"], question.id, "Under 3% a year.")
        db.expire_all()
        assert db.get(SubmissionComment, question.id).is_answered is True
        assert answer.parent_id == question.id
        _, _, unanswered = submission_workflow.list_comments(db, users["buyer"], submission.id, offset=0, limit=10)
        assert unanswered == 0

    def test_question_comment_after_view_counts_on_submission(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        comment = submission_workflow.add_comment(
            db, users["buyer"], submission.id,
            content="Can we see the shipper contracts?", comment_type="question", requires_response=True,
        )
        db.expire_all()
        stored = db.get(Submission, submission.id)
        assert stored.status == "questioned"
        assert stored.responded_at is not None
        assert comment.submission_id == submission.id
        assert "comment" in _audit_actions(db, "Submission")

    def test_private_comments_are_filtered_per_viewer(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        submission_workflow.add_comment(
            db, users["buyer"], submission.id, content="Note to self: check leases", comment_type="concern",
            is_private=True,
        )
        submission_workflow.add_comment(
            db, users["seller"], submission.id, content="Data room opens Monday", comment_type="clarification",
        )

        _, seller_total, _ = submission_workflow.list_comments(db, users["seller"], submission.id, offset=0, limit=10)
        _, buyer_total, _ = submission_workflow.list_comments(db, users["buyer"], submission.id, offset=0, limit=10)
        _, admin_total, _ = submission_workflow.list_comments(db, users["admin"], submission.id, offset=0, limit=10)
        assert (seller_total, buyer_total, admin_total) == (1, 2, 2)

    def test_listing_records_read_receipts(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        comment = submission_workflow.add_comment(
            db, users["buyer"], submission.id, content="Keen to learn more", comment_type="interest",
        )
        submission_workflow.list_comments(db, users["seller"], submission.id, offset=0, limit=10)
        submission_workflow.list_comments(db, users["seller"], submission.id, offset=0, limit=10)
        db.expire_all()
        readers = [entry["user_id"] for entry in db.get(SubmissionComment, comment.id).read_by]
        assert readers == [users["buyer"].id, users["seller"].id]

    def test_outsiders_cannot_read_or_reply(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        comment = submission_workflow.add_comment(
            db, users["buyer"], submission.id, content="Hello", comment_type="feedback",
        )
        with pytest.raises(AuthorizationDenied):
            submission_workflow.list_comments(db, users["buyer2"], submission.id, offset=0, limit=10)
        with pytest.raises(AuthorizationDenied):
            submission_workflow.reply_to_comment(db, users["other_seller"], comment.id, "Hi")
        with pytest.raises(NotFound):
            submission_workflow.reply_to_comment(db, users["seller"], 404, "Hi")


class TestSearch:
    def _catalogue(self, db, users):
        freight = _published(db, users)
        software = _published(
            db, users,
            title="Vertical SaaS for clinics",
            industry="software",
            company_name="ClinicFlow",
            summary="Recurring revenue scheduling platform for dental clinics.",
            investment_amount="800000",
            deal_type="investment",
            tags=["saas", "healthcare"],
        )
        return freight, software

    def _ids(self, db, identity, **filters):
        rows, total = proposal_workflow.list_for_identity(
            db, identity, status=None, industry=filters.pop("industry", None), offset=0, limit=10, **filters,
        )
        assert total == len(rows)
        return {p.id for p in rows}

    def test_keyword_matches_title_company_summary_and_tags(self, db, users):
        freight, software = self._catalogue(db, users)
        buyer = users["buyer"]
        assert self._ids(db, buyer, keyword="clinicflow") == {software.id}
        assert self._ids(db, buyer, keyword="Regional") == {freight.id}
        assert self._ids(db, buyer, keyword="dental") == {software.id}
        assert self._ids(db, buyer, keyword="healthcare") == {software.id}
        assert self._ids(db, buyer, keyword="100%") == set()

    def test_deal_type_and_amount_range(self, db, users):
        freight, software = self._catalogue(db, users)
        buyer = users["buyer"]
        assert self._ids(db, buyer, deal_type="acquisition") == {freight.id}
        assert self._ids(db, buyer, min_amount=Decimal("1000000")) == {freight.id}
        assert self._ids(db, buyer, max_amount=Decimal("1000000")) == {software.id}
        assert self._ids(db, users["seller"], industry="software", keyword="saas") == {software.id}

    def test_inverted_amount_range_is_rejected(self, db, users):
        with pytest.raises(ValidationFailed):
            self._ids(db, users["buyer"], min_amount=Decimal("5"), max_amount=Decimal("1"))

    def test_buyer_directory_is_seller_only(self, db, users):
        rows, total = proposal_workflow.buyer_directory(db, users["seller"], search=None, offset=0, limit=10)
        assert {u.id for u in rows} == {users["buyer"].id, users["buyer2"].id}
        rows, total = proposal_workflow.buyer_directory(db, users["seller"], search="harbor", offset=0, limit=10)
        assert [u.id for u in rows] == [users["buyer"].id]
        assert total == 1
        with pytest.raises(AuthorizationDenied):
            proposal_workflow.buyer_directory(db, users["buyer"], search=None, offset=0, limit=10)


class TestAuditIsBestEffort:
    def test_state_survives_audit_failure(self, db, users):
        proposal = proposal_workflow.create(db, users["seller"], dict(VALID_FIELDS))
        AuditLog.__table__.drop(bind=db.get_bind())

        result = proposal_workflow.submit(db, users["seller"], proposal.id)
        assert result.status == "pending_review"
        db.expire_all()
        assert db.get(Proposal, proposal.id).status == "pending_review"


class TestAnalyticsAndBackfill:
    def test_seller_analytics(self, db, users):
        proposal = _published(db, users)
        first = submission_workflow.record_view(db, users["buyer"], proposal.id)
        submission_workflow.record_interest(db, users["buyer2"], proposal.id, {"interest_level": "low"})
        submission_workflow.close(db, users["seller"], first.id, "deal_closed", None)

        stats = seller_analytics(db, users["seller"])
        assert stats["total_submissions"] == 2
        assert stats["closed_deals"] == 1
        assert stats["active_submissions"] == 1
        assert stats["conversion_rate"] == 50.0
        assert stats["status_distribution"]["interested"] == 1
        assert stats["total_views"] == 1

        with pytest.raises(AuthorizationDenied):
            seller_analytics(db, users["buyer"])

    def test_recompute_restores_scores(self, db, users):
        proposal = _published(db, users)
        submission = submission_workflow.record_view(db, users["buyer"], proposal.id)
        expected = submission.engagement_score
        db.query(Submission).update({Submission._engagement_score: 0}, synchronize_session=False)
        db.commit()

        assert recompute_all(db, dry_run=True) == {"scanned": 1, "changed": 1}
        db.expire_all()
        assert db.get(Submission, submission.id).engagement_score == 0

        assert recompute_all(db) == {"scanned": 1, "changed": 1}
        db.expire_all()
        assert db.get(Submission, submission.id).engagement_score == expected
