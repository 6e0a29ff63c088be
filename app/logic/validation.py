from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

DEAL_TYPES = ("acquisition", "investment", "partnership", "joint_venture")

TITLE_MIN = 5
TITLE_MAX = 100
SUMMARY_MIN = 10
SUMMARY_MAX = 500
DESCRIPTION_MIN = 50
TARGET_MARKET_MIN = 10

EDITABLE_FIELDS = (
    "title",
    "industry",
    "company_name",
    "summary",
    "description",
    "target_market",
    "investment_amount",
    "deal_type",
    "tags",
    "is_public",
    "allowed_buyer_ids",
)


@dataclass
class ValidationResult:
    errors: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str) -> None:
        self.errors.append((field_name, message))


def _text(value: Any) -> str:
    return str(value or "").strip()


def _min_length(result: ValidationResult, name: str, value: Any, minimum: int) -> None:
    if len(_text(value)) < minimum:
        result.add(name, f"must be at least {minimum} characters")


def _positive_amount(value: Any) -> bool:
    try:
        return Decimal(str(value)) > 0
    except (InvalidOperation, TypeError, ValueError):
        return False


def validate_proposal_fields(proposal: Any) -> ValidationResult:
    """Field-level checks gating draft -> pending_review."""
    result = ValidationResult()

    _min_length(result, "title", proposal.title, TITLE_MIN)
    if len(_text(proposal.title)) > TITLE_MAX:
        result.add("title", f"must be at most {TITLE_MAX} characters")

    _min_length(result, "summary", proposal.summary, SUMMARY_MIN)
    if len(_text(proposal.summary)) > SUMMARY_MAX:
        result.add("summary", f"must be at most {SUMMARY_MAX} characters")

    _min_length(result, "description", proposal.description, DESCRIPTION_MIN)
    _min_length(result, "target_market", proposal.target_market, TARGET_MARKET_MIN)

    if proposal.investment_amount is None or not _positive_amount(proposal.investment_amount):
        result.add("investment_amount", "must be a positive amount")

    deal_type = _text(proposal.deal_type)
    if not deal_type:
        result.add("deal_type", "is required")
    elif deal_type not in DEAL_TYPES:
        result.add("deal_type", f"must be one of {', '.join(DEAL_TYPES)}")

    return result
