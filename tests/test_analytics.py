import unittest
from unittest.mock import Mock, patch

from backend.reapply_app.database.models import ReApplication
from backend.reapply_app.database.mongo_service import MongoService
from backend.reapply_app.reapply.config import ReApplyConfig
from backend.reapply_app.reapply.service import ReApplicationService
from tests.support import DatabaseTestCase

COLLECTION_LOOKUP = "backend.reapply_app.database.mongo_service.get_mongo_collection"


class TestReApplicationMirror(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.service = ReApplicationService(self.session_maker, config=ReApplyConfig(analytics_enabled=True),
                                            clock=self.clock)
        self.collection = Mock()

    def commit_standard_scenario(self):
        original = self.add_standard_scenario()
        plan = self.service.preview(original.id, "user-1")
        with patch(COLLECTION_LOOKUP, return_value=self.collection) as lookup:
            result = self.service.commit(plan)
        lookup.assert_called_with("re_applications")
        return original, result

    def test_mirror_failure_keeps_the_commit(self):
        self.collection.replace_one.side_effect = RuntimeError("connection reset by peer")

        _, result = self.commit_standard_scenario()

        self.assertEqual(result.application.status, "draft")
        self.assertEqual(self.count(ReApplication), 1)
        self.collection.replace_one.assert_called_once()

    def test_summary_document(self):
        original, result = self.commit_standard_scenario()

        args, kwargs = self.collection.replace_one.call_args
        record_id = result.re_application.id
        self.assertEqual(args[0], {"_id": record_id})
        self.assertEqual(kwargs, {"upsert": True})
        document = args[1]
        self.assertEqual(document["_id"], record_id)
        self.assertEqual(document["re_application_id"], record_id)
        self.assertIn("stored_at", document)
        self.assertEqual(document["summary"], {
            "original_application_id": original.id,
            "new_application_id": result.application.id,
            "application_number": result.application.application_number,
            "user_id": "user-1",
            "reason": "rejected_application",
            "reusable_count": 1,
            "required_new_count": 2,
        })

    def test_disabled_mirror_is_not_called(self):
        self.service = ReApplicationService(self.session_maker, config=ReApplyConfig(analytics_enabled=False),
                                            clock=self.clock)
        original = self.add_standard_scenario()
        plan = self.service.preview(original.id, "user-1")

        with patch(COLLECTION_LOOKUP) as lookup:
            self.service.commit(plan)

        lookup.assert_not_called()


class TestMongoService(unittest.TestCase):

    def setUp(self):
        self.collection = Mock()
        patcher = patch(COLLECTION_LOOKUP, return_value=self.collection)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_statistics_by_reason(self):
        self.collection.aggregate.return_value = [
            {"_id": "rejected_application", "count": 3, "reused_documents": 4, "new_documents_required": 5},
            {"_id": "expired_documents", "count": 2, "reused_documents": 2, "new_documents_required": 2},
        ]

        stats = MongoService().get_re_application_statistics(30)

        self.assertEqual(stats, {
            "total_re_applications": 5,
            "by_reason": {
                "rejected_application": {"count": 3, "reused_documents": 4, "new_documents_required": 5},
                "expired_documents": {"count": 2, "reused_documents": 2, "new_documents_required": 2},
            },
        })
        pipeline = self.collection.aggregate.call_args[0][0]
        self.assertIn("$match", pipeline[0])
        self.assertEqual(pipeline[1]["$group"]["_id"], "$summary.reason")

    def test_statistics_error_is_empty(self):
        self.collection.aggregate.side_effect = RuntimeError("not primary")
        self.assertEqual(MongoService().get_re_application_statistics(), {})

    def test_analytics_event(self):
        self.assertTrue(MongoService().store_analytics_data("reapply", {"application_id": "app-1"}))

        document = self.collection.insert_one.call_args[0][0]
        self.assertEqual(document["event_type"], "reapply")
        self.assertEqual(document["data"], {"application_id": "app-1"})

    def test_missing_collection(self):
        with patch(COLLECTION_LOOKUP, return_value=None):
            self.assertFalse(MongoService().store_re_application("rec-1", {}))
            self.assertEqual(MongoService().get_re_application_statistics(), {})
