"""
MongoDB service for re-application analytics.
Mirrors committed re-applications and audit events for reporting; every call is
best-effort and reports failure instead of raising.
"""

import logging
from datetime import timedelta
from typing import Dict, Any, Optional
from .database_config import get_mongo_collection
from .models import utcnow

logger = logging.getLogger(__name__)


class MongoService:
    """Service for MongoDB operations."""

    def __init__(self):
        self.analytics_collection = "analytics"
        self.re_applications_collection = "re_applications"

    def _get_collection(self, collection_name: str):
        """Get MongoDB collection with fallback handling."""
        collection = get_mongo_collection(collection_name)
        if collection is None:
            logger.debug(f"MongoDB collection {collection_name} not available")
        return collection

    def store_analytics_data(self, event_type: str, data: Dict[str, Any]) -> bool:
        """Store analytics and audit data."""
        collection = self._get_collection(self.analytics_collection)
        if collection is None:
            return False

        try:
            document = {
                "event_type": event_type,
                "data": data,
                "timestamp": utcnow()
            }

            collection.insert_one(document)
            logger.debug(f"Analytics data stored: {event_type}")
            return True

        except Exception as e:
            logger.error(f"Failed to store analytics data: {e}")
            return False

    def store_re_application(self, re_application_id: str, summary: Dict[str, Any]) -> bool:
        """Upsert the summary of a committed re-application."""
        collection = self._get_collection(self.re_applications_collection)
        if collection is None:
            return False

        try:
            document = {
                "_id": re_application_id,
                "re_application_id": re_application_id,
                "summary": summary,
                "stored_at": utcnow()
            }

            collection.replace_one(
                {"_id": re_application_id},
                document,
                upsert=True
            )

            logger.info(f"Re-application mirrored to MongoDB: {re_application_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to store re-application: {e}")
            return False

    def get_re_application_statistics(self, days: int = 30) -> Dict[str, Any]:
        """Get re-application counts per reason for the last N days."""
        collection = self._get_collection(self.re_applications_collection)
        if collection is None:
            return {}

        try:
            since_date = utcnow() - timedelta(days=days)

            pipeline = [
                {"$match": {"stored_at": {"$gte": since_date}}},
                {
                    "$group": {
                        "_id": "$summary.reason",
                        "count": {"$sum": 1},
                        "reused_documents": {"$sum": "$summary.reusable_count"},
                        "new_documents_required": {"$sum": "$summary.required_new_count"}
                    }
                }
            ]

            by_reason = {}
            total = 0
            for row in collection.aggregate(pipeline):
                reason = row.pop("_id")
                by_reason[reason] = row
                total += row["count"]
            return {"total_re_applications": total, "by_reason": by_reason}

        except Exception as e:
            logger.error(f"Failed to get re-application statistics: {e}")
            return {}


# Global service instance
_mongo_service: Optional[MongoService] = None


def get_mongo_service() -> MongoService:
    """Get or create the global MongoDB service instance."""
    global _mongo_service
    if _mongo_service is None:
        _mongo_service = MongoService()
    return _mongo_service
