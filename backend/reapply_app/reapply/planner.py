"""
Re-application planner.

Turns a classification into the reuse/replace plan shown to the user before
anything is written. Building a plan has no side effects, so it doubles as a
dry-run preview.
"""

import datetime as dt
import hashlib
import json
from dataclasses import dataclass, field
from typing import Dict, Any, List

from ..database.models import Application
from .classifier import DocumentClassification, EXPIRED

REJECTED_APPLICATION = "rejected_application"
INCOMPLETE_REQUIREMENTS = "incomplete_requirements"
EXPIRED_DOCUMENTS = "expired_documents"
USER_REQUEST = "user_request"


@dataclass
class ReApplicationPlan:
    """Reuse/replace plan for one source application."""
    original_application_id: str
    user_id: str
    service_type: str
    purpose: str
    source_status: str
    source_version: int
    reason: str
    items: List[DocumentClassification]
    generated_at: dt.datetime
    fingerprint: str = field(default="")

    def __post_init__(self):
        if not self.fingerprint:
            self.fingerprint = plan_fingerprint(self.source_status, self.items)

    @property
    def reusable_items(self) -> List[DocumentClassification]:
        return [item for item in self.items if item.can_reuse]

    @property
    def reusable_count(self) -> int:
        return len(self.reusable_items)

    @property
    def required_new_count(self) -> int:
        # pending slots count toward neither bucket
        return sum(1 for item in self.items if item.needs_replacement)

    @property
    def total_requirements(self) -> int:
        return len(self.items)

    @property
    def completion_ratio(self) -> float:
        if not self.items:
            return 0.0
        return self.reusable_count / self.total_requirements

    @property
    def completion_percentage(self) -> int:
        return round(self.completion_ratio * 100)

    def to_summary(self) -> Dict[str, Any]:
        """Fields shown verbatim on the confirmation screen."""
        return {
            "original_application_id": self.original_application_id,
            "service_type": self.service_type,
            "purpose": self.purpose,
            "reason": self.reason,
            "reusable_count": self.reusable_count,
            "required_new_count": self.required_new_count,
            "total_requirements": self.total_requirements,
            "completion_ratio": self.completion_ratio,
            "completion_percentage": self.completion_percentage,
            "plan_fingerprint": self.fingerprint,
            "generated_at": self.generated_at.isoformat(),
            "items": [item.to_dict() for item in self.items],
        }


def plan_fingerprint(source_status: str, items: List[DocumentClassification]) -> str:
    payload = json.dumps(
        {"status": source_status, "items": [list(item.decision_key()) for item in items]},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def determine_reason(application: Application, items: List[DocumentClassification]) -> str:
    if application.status == "rejected":
        return REJECTED_APPLICATION
    if application.status == "incomplete":
        return INCOMPLETE_REQUIREMENTS
    if any(item.status == EXPIRED for item in items):
        return EXPIRED_DOCUMENTS
    return USER_REQUEST


def build_plan(application: Application, items: List[DocumentClassification],
               generated_at: dt.datetime) -> ReApplicationPlan:
    return ReApplicationPlan(
        original_application_id=application.id,
        user_id=application.user_id,
        service_type=application.service_type,
        purpose=application.purpose,
        source_status=application.status,
        source_version=application.version,
        reason=determine_reason(application, items),
        items=list(items),
        generated_at=generated_at,
    )
