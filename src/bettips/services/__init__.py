from .access import AccessResolver, ContentKind, visibility_clause
from .accounts import AccountService
from .catalog import Catalog
from .entitlements import EntitlementStore
from .notifications import Mailer
from .parlays import ParlayComposer
from .stats import StatsAggregator, success_rate
from .tips import TipRegistry

__all__ = [
    "AccessResolver",
    "ContentKind",
    "visibility_clause",
    "AccountService",
    "Catalog",
    "EntitlementStore",
    "Mailer",
    "ParlayComposer",
    "StatsAggregator",
    "success_rate",
    "TipRegistry",
]
