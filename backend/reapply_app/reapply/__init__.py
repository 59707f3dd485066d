"""
Document lifecycle and re-application engine.
Classifies the documents of a past application, plans what can be reused, and
commits a new draft application that carries the valid documents forward.
"""

from .exceptions import (
    ReApplicationError,
    ApplicationNotFound,
    NotEligible,
    CatalogUnavailable,
    StalePlan,
    CommitConflict,
    PersistenceFailure,
    UnknownRequirement,
    NotificationNotFound
)

__all__ = [
    'ReApplicationError',
    'ApplicationNotFound',
    'NotEligible',
    'CatalogUnavailable',
    'StalePlan',
    'CommitConflict',
    'PersistenceFailure',
    'UnknownRequirement',
    'NotificationNotFound'
]
