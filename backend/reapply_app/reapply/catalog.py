"""
Requirement catalog: active document requirements per service type.
"""

import datetime as dt
import logging
from typing import Dict, Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..database.models import DocumentRequirement
from ..database.repository import ApplicationRepository
from .exceptions import CatalogUnavailable

logger = logging.getLogger(__name__)

CERTIFICATE_OF_CONFIRMATION = "Certificate of Confirmation"

DEFAULT_REQUIREMENTS: List[Dict[str, Any]] = [
    {
        "id": "req_1",
        "service_type": CERTIFICATE_OF_CONFIRMATION,
        "name": "Birth Certificate",
        "description": "Official birth certificate from PSA",
        "validity_period_days": 365,
        "is_mandatory": True,
    },
    {
        "id": "req_2",
        "service_type": CERTIFICATE_OF_CONFIRMATION,
        "name": "Valid ID",
        "description": "Government-issued photo identification",
        "validity_period_days": 1825,
        "is_mandatory": True,
    },
    {
        "id": "req_3",
        "service_type": CERTIFICATE_OF_CONFIRMATION,
        "name": "Barangay Certificate",
        "description": "Certificate of residency from barangay",
        "validity_period_days": 90,
        "is_mandatory": True,
    },
]


class RequirementCatalog:
    """Read-only lookup of active requirements, failing closed."""

    def __init__(self, repository: ApplicationRepository):
        self.repository = repository

    def active_requirements(self, service_type: str) -> List[DocumentRequirement]:
        try:
            requirements = self.repository.active_requirements(service_type)
        except SQLAlchemyError as e:
            logger.error(f"Requirement catalog read failed for {service_type!r}: {e}")
            raise CatalogUnavailable(f"Requirement catalog could not be read for {service_type}") from e

        if not requirements:
            logger.warning(f"No active requirements configured for {service_type!r}")
            raise CatalogUnavailable(f"No active requirements configured for {service_type}")
        return requirements

    def get_active_requirement(self, service_type: str, requirement_id: str) -> Optional[DocumentRequirement]:
        for requirement in self.active_requirements(service_type):
            if requirement.id == requirement_id:
                return requirement
        return None


def expiration_for(requirement: DocumentRequirement, issued_at: dt.datetime) -> Optional[dt.datetime]:
    """Expiration date of a document issued at ``issued_at`` for this requirement."""
    if not requirement.validity_period_days:
        return None
    return issued_at + dt.timedelta(days=requirement.validity_period_days)


def seed_default_requirements(repository: ApplicationRepository) -> int:
    """Insert the default requirements that are not present yet."""
    created = 0
    for spec in DEFAULT_REQUIREMENTS:
        if repository.get_requirement(spec["id"]) is not None:
            continue
        repository.add_requirement(DocumentRequirement(is_active=True, **spec))
        created += 1
    if created:
        logger.info(f"Seeded {created} default document requirements")
    return created
