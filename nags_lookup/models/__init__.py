"""
Database models package.
Import all models here so init_beanie can register them.
"""
from nags_lookup.models.nags_cache import NagsCacheEntry
from nags_lookup.models.manual_queue import NagsManualQueueEntry
from nags_lookup.models.lookup_log import NagsLookupLog
from nags_lookup.models.distributor_credential import DistributorCredential
from nags_lookup.models.retry_queue import RetryQueueEntry, ActivityLog

__all__ = [
    "NagsCacheEntry",
    "NagsManualQueueEntry",
    "NagsLookupLog",
    "DistributorCredential",
    "RetryQueueEntry",
    "ActivityLog",
]

DOCUMENT_MODELS = [
    NagsCacheEntry,
    NagsManualQueueEntry,
    NagsLookupLog,
    DistributorCredential,
    RetryQueueEntry,
    ActivityLog,
]
