"""Context retrieval, ranking and summarization."""

from .config import ContextConfig, RetrievalOptions, WeightProfile, setup_logging
from .errors import ContextRetrievalError, RetrievalFailedError, RetrievalTimeoutError
from .models import ContextPackage, EntityType, Intent, IntentCategory, RankedContext, Source
from .ranking import RelevanceScorer, merge_and_rank
from .retrieval import ContextRetrievalService

__all__ = [
    "ContextConfig", "RetrievalOptions", "WeightProfile", "setup_logging",
    "ContextRetrievalError", "RetrievalFailedError", "RetrievalTimeoutError",
    "ContextPackage", "EntityType", "Intent", "IntentCategory", "RankedContext", "Source",
    "RelevanceScorer", "merge_and_rank",
    "ContextRetrievalService",
]
