"""
Eligibility filter: which past applications a user may re-apply from.
"""

import datetime as dt
from typing import Iterable, List, Mapping, Sequence

from ..database.models import Application, SubmittedDocument
from .classifier import is_document_expired

REAPPLICABLE_STATUSES = frozenset({"rejected", "incomplete"})


def has_expired_documents(documents: Iterable[SubmittedDocument], now: dt.datetime) -> bool:
    return any(is_document_expired(doc, now) for doc in documents)


def is_eligible(application: Application, documents: Iterable[SubmittedDocument],
                now: dt.datetime) -> bool:
    if application.status in REAPPLICABLE_STATUSES:
        return True
    return has_expired_documents(documents, now)


def eligibility_label(application: Application, documents: Iterable[SubmittedDocument],
                      now: dt.datetime) -> str:
    if application.status == "rejected":
        return "rejected"
    if application.status == "incomplete":
        return "incomplete"
    if has_expired_documents(documents, now):
        return "has_expired_documents"
    return "not_eligible"


def filter_eligible_applications(user_id: str,
                                 applications: Sequence[Application],
                                 documents_by_application: Mapping[str, Sequence[SubmittedDocument]],
                                 now: dt.datetime) -> List[Application]:
    """Applications of ``user_id`` that are rejected, incomplete or hold an expired document."""
    return [
        app for app in applications
        if app.user_id == user_id
        and is_eligible(app, documents_by_application.get(app.id, ()), now)
    ]
