from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from backend.reapply_app.database.models import Application, Notification, SubmittedDocument
from backend.reapply_app.database.repository import ApplicationRepository
from backend.reapply_app.reapply.exceptions import PersistenceFailure
from backend.reapply_app.services.expiry_service import sweep_application_deadlines, sweep_document_expirations
from tests.support import DatabaseTestCase


class TestExpirySweep(DatabaseTestCase):

    def sweep(self, **kwargs):
        return sweep_document_expirations(self.session_maker, now=self.now, **kwargs)

    def test_reminder_is_sent_once_per_scheduled_day(self):
        application = self.add_application(status="approved")
        doc = self.add_document(application, "req_1", expires_in_days=30)

        first = self.sweep()
        second = self.sweep()

        self.assertEqual(first["reminders_sent"], 1)
        self.assertEqual(second["reminders_sent"], 0)
        notifications = self.fetch(Notification)
        self.assertEqual(len(notifications), 1)
        self.assertEqual(notifications[0].title, "Document Expiring Soon")
        self.assertEqual(notifications[0].notification_type, "document_expiry")
        self.assertEqual(notifications[0].user_id, "user-1")
        self.assertIn("30 days", notifications[0].message)
        reloaded = self.fetch(SubmittedDocument, SubmittedDocument.id == doc.id)[0]
        self.assertEqual(reloaded.expiry_reminder_sent_days, 30)
        self.assertEqual(reloaded.status, "approved")

    def test_days_outside_the_schedule_are_quiet(self):
        application = self.add_application(status="approved")
        self.add_document(application, "req_1", expires_in_days=20)
        self.assertEqual(self.sweep()["reminders_sent"], 0)
        self.assertEqual(self.count(Notification), 0)

    def test_custom_schedule(self):
        application = self.add_application(status="approved")
        self.add_document(application, "req_1", expires_in_days=20)
        self.assertEqual(self.sweep(reminder_days=[20])["reminders_sent"], 1)

    def test_lapsed_document_is_marked_expired(self):
        application = self.add_application(status="approved")
        doc = self.add_document(application, "req_2", expires_in_days=-2)

        summary = self.sweep()

        self.assertEqual(summary["documents_expired"], 1)
        reloaded = self.fetch(SubmittedDocument, SubmittedDocument.id == doc.id)[0]
        self.assertEqual(reloaded.status, "expired")
        notification = self.fetch(Notification)[0]
        self.assertEqual(notification.title, "Document Expired")
        self.assertEqual(notification.notification_type, "error")
        # already expired documents are not reported again
        self.assertEqual(self.sweep()["documents_expired"], 0)

    def test_only_current_approved_documents_are_checked(self):
        application = self.add_application(status="incomplete")
        self.add_document(application, "req_1", status="pending", expires_in_days=-5)
        self.add_document(application, "req_2", status="rejected", expires_in_days=30)
        self.add_document(application, "req_3", status="approved", expires_in_days=-3, uploaded_days_ago=20)
        self.add_document(application, "req_3", status="approved", expires_in_days=200, uploaded_days_ago=1)

        summary = self.sweep()

        self.assertEqual(summary["reminders_sent"], 0)
        self.assertEqual(summary["documents_expired"], 0)
        self.assertEqual(self.count(Notification), 0)

    def test_failure_keeps_no_changes(self):
        application = self.add_application(status="approved")
        self.add_document(application, "req_1", expires_in_days=30)
        self.add_document(application, "req_2", expires_in_days=-1)
        failure = OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))

        with patch.object(ApplicationRepository, "add_notification", side_effect=failure):
            with self.assertRaises(PersistenceFailure):
                self.sweep()

        self.assertEqual(self.count(Notification), 0)
        self.assertEqual(self.count(SubmittedDocument, SubmittedDocument.status == "expired"), 0)


class TestDeadlineSweep(DatabaseTestCase):

    def sweep(self, **kwargs):
        return sweep_application_deadlines(self.session_maker, now=self.now, **kwargs)

    def test_reminder_on_scheduled_day(self):
        application = self.add_application(status="draft")
        self.set_deadline(application, 7)

        first = self.sweep()
        second = self.sweep()

        self.assertEqual(first["reminders_sent"], 1)
        self.assertEqual(second["reminders_sent"], 0)
        notification = self.fetch(Notification)[0]
        self.assertEqual(notification.title, "Deadline Reminder")
        self.assertEqual(notification.notification_type, "deadline_reminder")
        self.assertEqual(notification.application_id, application.id)
        self.assertIn("7 days left", notification.message)
        reloaded = self.fetch(Application, Application.id == application.id)[0]
        self.assertEqual(reloaded.deadline_reminder_sent_days, 7)

    def test_last_day_is_singular(self):
        application = self.add_application(status="incomplete")
        self.set_deadline(application, 1)
        self.sweep()
        self.assertIn("1 day left", self.fetch(Notification)[0].message)

    def test_missed_deadline_reported_once(self):
        application = self.add_application(status="draft")
        self.set_deadline(application, -1)

        first = self.sweep()
        second = self.sweep()

        self.assertEqual(first["deadlines_missed"], 1)
        self.assertEqual(second["deadlines_missed"], 0)
        notification = self.fetch(Notification)[0]
        self.assertEqual(notification.title, "Deadline Missed")
        self.assertEqual(notification.notification_type, "error")
        self.assertTrue(self.fetch(Application, Application.id == application.id)[0].deadline_missed)

    def test_submitted_and_undated_applications_are_skipped(self):
        submitted = self.add_application(status="submitted")
        self.set_deadline(submitted, -3)
        self.add_application(status="draft")

        summary = self.sweep()

        self.assertEqual(summary["reminders_sent"], 0)
        self.assertEqual(summary["deadlines_missed"], 0)
        self.assertEqual(self.count(Notification), 0)

    def test_days_outside_the_schedule_are_quiet(self):
        application = self.add_application(status="draft")
        self.set_deadline(application, 10)
        self.assertEqual(self.sweep()["reminders_sent"], 0)
        self.assertEqual(self.sweep(reminder_days=[10])["reminders_sent"], 1)
