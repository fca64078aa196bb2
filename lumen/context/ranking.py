"""Relevance scoring and merging of multi-source retrieval hits.

Scoring is multiplicative:

    score = raw * source_weight * intent_entity_weight * mention_boost

capped at 1.0. When the same entity arrives through several channels the
merged item keeps the best score any single channel earned; weak hits
never dilute a strong one.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Optional

from .config import WeightProfile
from .models import (
    EntityType, Intent, RankedItem, RetrievalItem, SemanticMatch, Source
)
from .summarizer import display_name, summarize


class RelevanceScorer:
    """Turns raw channel relevance into a final score in [0, 1]."""

    def __init__(self, profile: Optional[WeightProfile] = None):
        """
        Initialize scorer.

        Args:
            profile: Weight tables; defaults to the built-in profile
        """
        profile = profile or WeightProfile()
        self.source_weights = MappingProxyType(dict(profile.source_weights))
        self.intent_entity_weights = MappingProxyType({
            category: MappingProxyType(dict(weights))
            for category, weights in profile.intent_entity_weights.items()
        })
        self.mention_boost = profile.mention_boost
        self.mention_wildcard = profile.mention_wildcard

    def source_weight(self, source: Source) -> float:
        return self.source_weights.get(source, 1.0)

    def intent_weight(self, intent: Intent, entity_type: EntityType) -> float:
        weights = self.intent_entity_weights.get(intent.category)
        if not weights:
            return 1.0
        return weights.get(entity_type, 1.0)

    def is_mentioned(self, intent: Intent, entity_type: EntityType) -> bool:
        return any(
            e.type == entity_type.value or e.type == self.mention_wildcard
            for e in intent.entities
        )

    def score(self,
              raw_relevance: float,
              source: Source,
              entity_type: EntityType,
              intent: Intent) -> float:
        score = raw_relevance
        score *= self.source_weight(source)
        score *= self.intent_weight(intent, entity_type)

        if self.is_mentioned(intent, entity_type):
            score *= self.mention_boost

        return max(0.0, min(1.0, score))

    def score_item(self, item: RetrievalItem, intent: Intent) -> float:
        return self.score(item.relevance, item.source, item.entity_type, intent)


def merge_and_rank(items: List[RetrievalItem],
                   intent: Intent,
                   scorer: Optional[RelevanceScorer] = None) -> List[RankedItem]:
    """
    Collapse items sharing an identity and sort by final relevance.

    Groups keep first-seen order, so equal scores stay in insertion order.
    """
    scorer = scorer or RelevanceScorer()
    grouped: Dict[str, RankedItem] = {}

    for item in items:
        score = scorer.score_item(item, intent)
        existing = grouped.get(item.key)

        if existing is None:
            grouped[item.key] = RankedItem(
                entity_type=item.entity_type,
                entity_id=item.entity_id,
                display_name=display_name(item.entity, item.entity_type),
                relevance=score,
                summary=summarize(item.entity, item.entity_type),
                entity=item.entity,
                sources=[item.source],
                relevance_reasons=[item.relevance_reason] if item.relevance_reason else [],
            )
            continue

        if item.source not in existing.sources:
            existing.sources.append(item.source)
        if item.relevance_reason and item.relevance_reason not in existing.relevance_reasons:
            existing.relevance_reasons.append(item.relevance_reason)
        existing.relevance = max(existing.relevance, score)

    return sorted(grouped.values(), key=lambda r: r.relevance, reverse=True)


def rank_semantic_matches(matches: List[SemanticMatch],
                          intent: Intent,
                          scorer: Optional[RelevanceScorer] = None) -> List[SemanticMatch]:
    """Boost similarities by intent-entity weight and sort descending."""
    scorer = scorer or RelevanceScorer()
    boosted = [
        SemanticMatch(
            entity_type=m.entity_type,
            entity_id=m.entity_id,
            similarity=min(1.0, m.similarity * scorer.intent_weight(intent, m.entity_type)),
            content=m.content,
            entity=m.entity,
        )
        for m in matches
    ]
    return sorted(boosted, key=lambda m: m.similarity, reverse=True)


def calculate_time_relevance(when: datetime, reference: datetime) -> float:
    """Step-function relevance by distance from the reference time."""
    diff_days = abs((when - reference).total_seconds()) / 86400

    if diff_days <= 1:
        return 1.0
    if diff_days <= 7:
        return 0.8
    if diff_days <= 30:
        return 0.6
    if diff_days <= 90:
        return 0.4
    return 0.2


def calculate_recency_relevance(when: datetime, reference: datetime) -> float:
    """Step-function relevance of a past interaction by hours elapsed."""
    diff_hours = abs((reference - when).total_seconds()) / 3600

    if diff_hours <= 1:
        return 1.0
    if diff_hours <= 24:
        return 0.8
    if diff_hours <= 168:
        return 0.6
    if diff_hours <= 720:
        return 0.4
    return 0.2
