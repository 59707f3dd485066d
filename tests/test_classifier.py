import datetime as dt
import unittest

from backend.reapply_app.database.models import DocumentRequirement, SubmittedDocument
from backend.reapply_app.reapply.classifier import (
    classify_documents,
    classify_requirement,
    is_document_expired,
)

NOW = dt.datetime(2026, 10, 19, 12, 0, 0)


def requirement(req_id="req_1", validity=365):
    return DocumentRequirement(id=req_id, service_type="Certificate of Confirmation",
                               name=f"Requirement {req_id}", validity_period_days=validity,
                               is_mandatory=True, is_active=True)


def document(req_id="req_1", status="approved", expiration=None, doc_id="doc-1"):
    return SubmittedDocument(id=doc_id, application_id="app-1", requirement_id=req_id,
                             file_reference="uploads/doc.pdf", original_filename="doc.pdf",
                             status=status, expiration_date=expiration)


class TestClassifyRequirement(unittest.TestCase):

    def test_missing_document(self):
        item = classify_requirement(requirement(), None, NOW)
        self.assertEqual(item.status, "missing")
        self.assertFalse(item.can_reuse)
        self.assertIsNone(item.expiration_date)
        self.assertIsNone(item.days_until_expiry)
        self.assertTrue(item.needs_replacement)

    def test_approved_with_future_expiry_is_valid(self):
        item = classify_requirement(requirement(), document(expiration=NOW + dt.timedelta(days=400)), NOW)
        self.assertEqual(item.status, "valid")
        self.assertTrue(item.can_reuse)
        self.assertEqual(item.days_until_expiry, 400)
        self.assertFalse(item.needs_replacement)

    def test_approved_without_expiry_is_valid(self):
        item = classify_requirement(requirement(), document(expiration=None), NOW)
        self.assertEqual(item.status, "valid")
        self.assertTrue(item.can_reuse)
        self.assertIsNone(item.days_until_expiry)

    def test_past_expiry_wins_over_approved_status(self):
        item = classify_requirement(requirement(), document(expiration=NOW - dt.timedelta(days=10)), NOW)
        self.assertEqual(item.status, "expired")
        self.assertFalse(item.can_reuse)
        self.assertEqual(item.days_until_expiry, -10)

    def test_past_expiry_wins_over_pending_and_rejected(self):
        past = NOW - dt.timedelta(days=1)
        for status in ("pending", "rejected"):
            item = classify_requirement(requirement(), document(status=status, expiration=past), NOW)
            self.assertEqual(item.status, "expired", status)

    def test_expired_status_without_date(self):
        item = classify_requirement(requirement(), document(status="expired"), NOW)
        self.assertEqual(item.status, "expired")
        self.assertFalse(item.can_reuse)

    def test_rejected_document(self):
        item = classify_requirement(requirement(), document(status="rejected",
                                                           expiration=NOW + dt.timedelta(days=30)), NOW)
        self.assertEqual(item.status, "rejected")
        self.assertFalse(item.can_reuse)
        self.assertTrue(item.needs_replacement)

    def test_under_review_is_pending(self):
        item = classify_requirement(requirement(), document(status="pending",
                                                           expiration=NOW + dt.timedelta(days=30)), NOW)
        self.assertEqual(item.status, "pending")
        self.assertFalse(item.can_reuse)
        self.assertFalse(item.needs_replacement)

    def test_approved_expiring_exactly_now_is_pending(self):
        item = classify_requirement(requirement(), document(expiration=NOW), NOW)
        self.assertEqual(item.status, "pending")
        self.assertFalse(item.can_reuse)
        self.assertEqual(item.days_until_expiry, 0)

    def test_days_until_expiry_rounds_up(self):
        item = classify_requirement(requirement(), document(expiration=NOW + dt.timedelta(hours=36)), NOW)
        self.assertEqual(item.days_until_expiry, 2)

    def test_timezone_aware_expiry_is_compared_in_utc(self):
        aware = (NOW - dt.timedelta(hours=1)).replace(tzinfo=dt.timezone.utc)
        item = classify_requirement(requirement(), document(expiration=aware), NOW)
        self.assertEqual(item.status, "expired")


class TestClassifyDocuments(unittest.TestCase):

    def setUp(self):
        self.requirements = [requirement("req_1", 365), requirement("req_2", 1825), requirement("req_3", 90)]
        self.documents = {
            "req_1": document("req_1", expiration=NOW + dt.timedelta(days=400), doc_id="doc-1"),
            "req_2": document("req_2", expiration=NOW - dt.timedelta(days=10), doc_id="doc-2"),
        }

    def test_one_item_per_requirement_in_catalog_order(self):
        items = classify_documents(self.requirements, self.documents, NOW)
        self.assertEqual([item.requirement.id for item in items], ["req_1", "req_2", "req_3"])
        self.assertEqual([item.status for item in items], ["valid", "expired", "missing"])
        self.assertEqual([item.can_reuse for item in items], [True, False, False])

    def test_documents_for_unknown_requirements_are_ignored(self):
        documents = dict(self.documents, req_9=document("req_9", doc_id="doc-9"))
        items = classify_documents(self.requirements, documents, NOW)
        self.assertEqual(len(items), 3)

    def test_classification_is_idempotent(self):
        first = classify_documents(self.requirements, self.documents, NOW)
        second = classify_documents(self.requirements, self.documents, NOW)
        self.assertEqual(first, second)
        self.assertEqual([i.decision_key() for i in first], [i.decision_key() for i in second])

    def test_to_dict_exposes_display_fields(self):
        item = classify_documents(self.requirements, self.documents, NOW)[0]
        data = item.to_dict()
        self.assertEqual(data["requirement_id"], "req_1")
        self.assertEqual(data["document_id"], "doc-1")
        self.assertEqual(data["status"], "valid")
        self.assertTrue(data["can_reuse"])
        self.assertEqual(data["days_until_expiry"], 400)
        self.assertEqual(data["expiration_date"], (NOW + dt.timedelta(days=400)).isoformat())


class TestIsDocumentExpired(unittest.TestCase):

    def test_future_approved_document_is_not_expired(self):
        self.assertFalse(is_document_expired(document(expiration=NOW + dt.timedelta(days=1)), NOW))

    def test_no_date_and_not_marked_is_not_expired(self):
        self.assertFalse(is_document_expired(document(status="pending"), NOW))
