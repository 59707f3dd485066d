"""
Document status classification.

For one application, decides per active requirement whether the current
document can be carried into a re-application. Pure over its inputs: the
caller loads requirements and current documents, and supplies ``now``.
"""

import datetime as dt
import math
from dataclasses import dataclass
from typing import Dict, Any, List, Mapping, Optional

from ..database.models import DocumentRequirement, SubmittedDocument

VALID = "valid"
EXPIRED = "expired"
REJECTED = "rejected"
PENDING = "pending"
MISSING = "missing"

NEEDS_REPLACEMENT = frozenset({EXPIRED, REJECTED, MISSING})

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class DocumentClassification:
    """Classification of one requirement slot."""
    requirement: DocumentRequirement
    document: Optional[SubmittedDocument]
    status: str  # 'valid', 'expired', 'rejected', 'pending', 'missing'
    can_reuse: bool
    expiration_date: Optional[dt.datetime] = None
    days_until_expiry: Optional[int] = None

    @property
    def needs_replacement(self) -> bool:
        return self.status in NEEDS_REPLACEMENT

    def decision_key(self) -> tuple:
        """Fields that drive the re-application decision (time-independent)."""
        return (
            self.requirement.id,
            self.document.id if self.document is not None else None,
            self.status,
            self.can_reuse,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requirement_id": self.requirement.id,
            "requirement_name": self.requirement.name,
            "description": self.requirement.description,
            "is_mandatory": bool(self.requirement.is_mandatory),
            "validity_period_days": self.requirement.validity_period_days,
            "document_id": self.document.id if self.document is not None else None,
            "original_filename": self.document.original_filename if self.document is not None else None,
            "status": self.status,
            "can_reuse": self.can_reuse,
            "needs_replacement": self.needs_replacement,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "days_until_expiry": self.days_until_expiry,
        }


def as_naive_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(dt.timezone.utc).replace(tzinfo=None)


def days_until(expiration_date: dt.datetime, now: dt.datetime) -> int:
    return math.ceil((expiration_date - now).total_seconds() / SECONDS_PER_DAY)


def is_document_expired(document: SubmittedDocument, now: dt.datetime) -> bool:
    """Expired either by review status or by its computed expiration date.

    The computed date wins over a stale ``approved`` status.
    """
    if document.status == EXPIRED:
        return True
    expiration_date = as_naive_utc(document.expiration_date)
    return expiration_date is not None and expiration_date < as_naive_utc(now)


def classify_requirement(requirement: DocumentRequirement,
                         document: Optional[SubmittedDocument],
                         now: dt.datetime) -> DocumentClassification:
    if document is None:
        return DocumentClassification(requirement=requirement, document=None,
                                      status=MISSING, can_reuse=False)

    now = as_naive_utc(now)
    expiration_date = as_naive_utc(document.expiration_date)
    days_until_expiry = days_until(expiration_date, now) if expiration_date is not None else None

    if is_document_expired(document, now):
        status, can_reuse = EXPIRED, False
    elif document.status == REJECTED:
        status, can_reuse = REJECTED, False
    elif document.status == "approved" and (expiration_date is None or expiration_date > now):
        status, can_reuse = VALID, True
    else:
        # still under review, or expiring exactly now
        status, can_reuse = PENDING, False

    return DocumentClassification(
        requirement=requirement,
        document=document,
        status=status,
        can_reuse=can_reuse,
        expiration_date=expiration_date,
        days_until_expiry=days_until_expiry,
    )


def classify_documents(requirements: List[DocumentRequirement],
                       current_documents: Mapping[str, SubmittedDocument],
                       now: dt.datetime) -> List[DocumentClassification]:
    """Classify every requirement against its current document.

    ``current_documents`` maps requirement id to the single current document
    of that slot, as returned by ``ApplicationRepository.current_documents``.
    """
    return [
        classify_requirement(requirement, current_documents.get(requirement.id), now)
        for requirement in requirements
    ]
