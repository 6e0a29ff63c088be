"""Tests for app/logic/submission_lifecycle.py and app/logic/nda_gate.py

Run with:  pytest tests/test_submission_lifecycle.py -v
"""
import random
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.errors import (
    AlreadyApproved,
    AlreadySigned,
    AuthorizationDenied,
    InvalidStateTransition,
    MarketplaceError,
    NdaRequired,
    NoRequestPending,
    TerminalStateError,
    ValidationFailed,
)
from app.logic import nda_gate
from app.logic import submission_lifecycle as lifecycle
from app.logic.identity import Identity

SELLER = Identity(id=1, role="seller")
BUYER = Identity(id=3, role="buyer")
OTHER_BUYER = Identity(id=4, role="buyer")
ADMIN = Identity(id=9, role="admin")

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

SELLER_CARD = {"email": "seller@northwind.example", "company": "Northwind Freight", "phone": None, "position": "CEO"}
BUYER_CARD = {"email": "buyer@capital.example", "company": "Harbor Capital", "phone": None, "position": "Partner"}


def _at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


def _proposal(**kwargs):
    defaults = dict(id=10, seller_id=SELLER.id, status="published")
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def _open():
    return lifecycle.open_submission(_proposal(), BUYER.id, T0)


def _signed():
    submission = _open()
    lifecycle.record_view(BUYER, submission, _at(1))
    lifecycle.sign_nda(BUYER, submission, _at(2), signature="Bea Buyer", ip_address="10.0.0.1")
    return submission


def _status_changes(submission):
    return [(i.details["from"], i.details["to"]) for i in submission.interactions if i.event_type == "status_change"]


# ── opening ────────────────────────────────────────────────────────────────────

class TestOpen:
    def test_open_starts_sent(self):
        submission = _open()
        assert submission.status == "sent"
        assert submission.sent_at == T0
        assert submission.seller_id == SELLER.id
        assert submission.engagement_score == 0

    def test_only_published_proposals(self):
        with pytest.raises(InvalidStateTransition):
            lifecycle.open_submission(_proposal(status="approved"), BUYER.id, T0)

    def test_seller_cannot_engage_own_proposal(self):
        with pytest.raises(AuthorizationDenied):
            lifecycle.open_submission(_proposal(), SELLER.id, T0)


# ── buyer interactions ─────────────────────────────────────────────────────────

class TestInteractions:
    def test_first_view_moves_sent_to_viewed(self):
        submission = _open()
        lifecycle.record_view(BUYER, submission, _at(1))
        lifecycle.record_view(BUYER, submission, _at(2))
        assert submission.status == "viewed"
        assert submission.view_count == 2
        assert submission.first_viewed_at == _at(1)
        assert submission.last_viewed_at == _at(2)
        assert _status_changes(submission) == [("sent", "viewed")]

    def test_only_the_buyer_interacts(self):
        submission = _open()
        for identity in (OTHER_BUYER, SELLER, ADMIN):
            with pytest.raises(AuthorizationDenied):
                lifecycle.record_view(identity, submission, _at(1))

    def test_engagement_scenario(self):
        submission = _open()
        lifecycle.record_view(BUYER, submission, _at(1))
        lifecycle.record_view(BUYER, submission, _at(2))
        lifecycle.record_question(BUYER, submission, "What is the customer concentration?", _at(5))
        lifecycle.record_interest(BUYER, submission, _at(10), interest_level="high")
        assert submission.status == "interested"
        assert submission.response_time_hours == 5.0
        assert submission.engagement_score == 65

    def test_question_requires_text(self):
        with pytest.raises(ValidationFailed):
            lifecycle.record_question(BUYER, _open(), "  ", _at(1))

    def test_interest_validates_level_and_capacity(self):
        submission = _open()
        with pytest.raises(ValidationFailed):
            lifecycle.record_interest(BUYER, submission, _at(1), interest_level="extreme")
        with pytest.raises(ValidationFailed):
            lifecycle.record_interest(
                BUYER, submission, _at(1), interest_level="high", capacity_min=10, capacity_max=5,
            )
        assert submission.status == "sent"

    def test_interest_after_nda_moves_to_interested(self):
        submission = _signed()
        lifecycle.record_interest(BUYER, submission, _at(3), interest_level="medium", capacity_currency="usd")
        assert submission.status == "interested"
        assert submission.interactions[-1].details["from"] == "nda_signed"
        assert submission.nda_signed_at == _at(2)
        assert submission.interest_level == "medium"
        assert submission.capacity_currency == "USD"

    def test_download_counts(self):
        submission = _open()
        lifecycle.record_download(BUYER, submission, _at(1), document="teaser.pdf")
        assert submission.download_count == 1
        assert submission.interactions[-1].details == {"document": "teaser.pdf"}


# ── NDA gate and contact exchange ──────────────────────────────────────────────

class TestContactExchange:
    def test_contact_request_requires_nda(self):
        submission = _open()
        lifecycle.record_view(BUYER, submission, _at(1))
        with pytest.raises(NdaRequired):
            lifecycle.request_contact_exchange(BUYER, submission, _at(2))
        assert submission.contact_requested_at is None

        lifecycle.sign_nda(BUYER, submission, _at(3), signature="Bea Buyer", user_agent="pytest")
        lifecycle.request_contact_exchange(BUYER, submission, _at(4), "Keen to talk")
        assert submission.status == "detail_requested"
        assert submission.contact_request_message == "Keen to talk"

    def test_sign_twice(self):
        submission = _signed()
        with pytest.raises(AlreadySigned):
            lifecycle.sign_nda(BUYER, submission, _at(3), signature="Bea Buyer")
        assert submission.nda_signed_at == _at(2)

    def test_sign_requires_agreement_and_signature(self):
        with pytest.raises(ValidationFailed) as exc:
            lifecycle.sign_nda(BUYER, _open(), _at(1), signature="", agreed=False)
        assert {name for name, _ in exc.value.errors} == {"agreed", "signature"}

    def test_sign_records_audit_metadata(self):
        submission = _signed()
        assert submission.nda_ip_address == "10.0.0.1"
        assert submission.nda_version
        change = [i for i in submission.interactions if i.event_type == "status_change"][-1]
        assert change.details["to"] == "nda_signed"
        assert change.details["metadata"]["ip_address"] == "10.0.0.1"

    def test_approve_contact(self):
        submission = _signed()
        with pytest.raises(NoRequestPending):
            lifecycle.approve_contact_exchange(
                SELLER, submission, _at(3), seller_contact=SELLER_CARD, buyer_contact=BUYER_CARD,
            )
        lifecycle.request_contact_exchange(BUYER, submission, _at(3))
        assert nda_gate.visible_contacts(submission) is None

        with pytest.raises(AuthorizationDenied):
            lifecycle.approve_contact_exchange(
                BUYER, submission, _at(4), seller_contact=SELLER_CARD, buyer_contact=BUYER_CARD,
            )
        lifecycle.approve_contact_exchange(
            SELLER, submission, _at(4), seller_contact=SELLER_CARD, buyer_contact=BUYER_CARD,
        )
        assert submission.status == "contact_exchanged"
        assert submission.contact_approved_by == SELLER.id
        assert nda_gate.visible_contacts(submission)["seller_contact"]["email"] == SELLER_CARD["email"]

        with pytest.raises(AlreadyApproved):
            lifecycle.approve_contact_exchange(
                SELLER, submission, _at(5), seller_contact=SELLER_CARD, buyer_contact=BUYER_CARD,
            )

    def test_seller_contact_needs_email_and_company(self):
        submission = _signed()
        lifecycle.request_contact_exchange(BUYER, submission, _at(3))
        with pytest.raises(ValidationFailed):
            lifecycle.approve_contact_exchange(
                SELLER, submission, _at(4), seller_contact={"email": "nope"}, buyer_contact=BUYER_CARD,
            )
        assert submission.status == "detail_requested"


# ── negotiation and closing ────────────────────────────────────────────────────

class TestNegotiationAndClose:
    def test_negotiation_needs_nda(self):
        submission = _open()
        lifecycle.record_view(BUYER, submission, _at(1))
        with pytest.raises(NdaRequired):
            lifecycle.start_negotiation(SELLER, submission, _at(2))

    def test_negotiation_from_signed(self):
        submission = _signed()
        lifecycle.start_negotiation(SELLER, submission, _at(3), "term sheet sent")
        assert submission.status == "under_negotiation"
        with pytest.raises(InvalidStateTransition):
            lifecycle.start_negotiation(BUYER, submission, _at(4))

    def test_terminal_twice(self):
        submission = _signed()
        lifecycle.close_submission(SELLER, submission, "deal_closed", _at(5), "signed SPA")
        assert submission.status == "deal_closed"
        assert submission.closed_at == _at(5)
        with pytest.raises(TerminalStateError):
            lifecycle.close_submission(SELLER, submission, "deal_closed", _at(6))
        with pytest.raises(TerminalStateError):
            lifecycle.record_view(BUYER, submission, _at(6))
        assert lifecycle.legal_actions(submission) == []

    def test_admin_may_only_archive(self):
        submission = _open()
        with pytest.raises(AuthorizationDenied):
            lifecycle.close_submission(ADMIN, submission, "deal_closed", _at(1))
        lifecycle.close_submission(ADMIN, submission, "archived", _at(1))
        assert submission.status == "archived"

    def test_close_target_must_be_terminal(self):
        with pytest.raises(ValidationFailed):
            lifecycle.close_submission(SELLER, _open(), "viewed", _at(1))


# ── random histories ───────────────────────────────────────────────────────────

def _random_step(rng, submission, now):
    choice = rng.randrange(9)
    if choice == 0:
        lifecycle.record_view(BUYER, submission, now)
    elif choice == 1:
        lifecycle.record_download(BUYER, submission, now)
    elif choice == 2:
        lifecycle.record_question(BUYER, submission, "Any debt?", now)
    elif choice == 3:
        lifecycle.record_interest(BUYER, submission, now, interest_level=rng.choice(lifecycle.INTEREST_LEVELS))
    elif choice == 4:
        lifecycle.sign_nda(BUYER, submission, now, signature="Bea Buyer")
    elif choice == 5:
        lifecycle.request_contact_exchange(BUYER, submission, now)
    elif choice == 6:
        lifecycle.approve_contact_exchange(
            SELLER, submission, now, seller_contact=SELLER_CARD, buyer_contact=BUYER_CARD,
        )
    elif choice == 7:
        lifecycle.start_negotiation(rng.choice([BUYER, SELLER]), submission, now)
    elif rng.random() < 0.2:
        lifecycle.close_submission(SELLER, submission, rng.choice(sorted(lifecycle.TERMINAL_STATUSES)), now)


@pytest.mark.parametrize("seed", range(25))
def test_random_histories_keep_invariants(seed):
    rng = random.Random(seed)
    submission = _open()
    for step in range(60):
        try:
            _random_step(rng, submission, _at(rng.uniform(0, 200)) if step else _at(0.5))
        except MarketplaceError:
            pass
        assert 0 <= submission.engagement_score <= 100
        if submission.status == "contact_exchanged":
            assert submission.nda_signed_at is not None
        if submission.contact_requested_at is not None:
            assert submission.nda_signed_at is not None
