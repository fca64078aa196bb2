"""In-memory collaborators that can be used without a database or vector index."""

import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .interfaces import SemanticHit
from .models import (
    ConversationMessage, Entity, EntityType, Interaction, InteractionType
)
from .summarizer import summarize


OPEN_STATUSES = {
    EntityType.TASK: {"pending", "in_progress"},
    EntityType.DEADLINE: {"pending"},
}

_ACTION_TO_INTERACTION = {
    "query": InteractionType.QUERIED,
    "create": InteractionType.CREATED,
    "update": InteractionType.UPDATED,
    "delete": InteractionType.DELETED,
    "search": InteractionType.SEARCHED,
}


def map_action_to_interaction_type(action: str) -> InteractionType:
    """Map an audit-log action to the interaction it represents."""
    return _ACTION_TO_INTERACTION.get(action, InteractionType.VIEWED)


def _label(entity: Entity) -> str:
    kind = entity.kind
    if kind in (EntityType.PERSON, EntityType.PLACE, EntityType.ROUTINE, EntityType.PROJECT):
        return entity.name
    if kind == EntityType.NOTE:
        return entity.title or ""
    return entity.title


def _when(entity: Entity) -> Optional[datetime]:
    """The moment an entity is due, starts or expires."""
    kind = entity.kind
    if kind == EntityType.EVENT:
        return entity.starts_at
    if kind in (EntityType.TASK, EntityType.PROJECT):
        return entity.due_date
    if kind in (EntityType.DEADLINE, EntityType.OPEN_LOOP):
        return entity.due_at
    if kind == EntityType.OPPORTUNITY:
        return entity.expires_at
    return None


def _free_text(entity: Entity) -> str:
    kind = entity.kind
    if kind == EntityType.EVENT:
        return " ".join(t for t in (entity.description, entity.notes) if t)
    if kind == EntityType.TASK:
        return entity.description or ""
    if kind == EntityType.NOTE:
        return entity.content
    return ""


class InMemoryEntityStore:
    """Entity store holding records in per-type lists."""

    def __init__(self, entities: Optional[Sequence[Entity]] = None):
        self._entities: Dict[EntityType, List[Entity]] = defaultdict(list)
        for entity in entities or []:
            self.add(entity)

    def add(self, entity: Entity) -> None:
        self._entities[entity.kind].append(entity)

    def _live(self, user_id: str, entity_type: EntityType) -> List[Entity]:
        return [
            e for e in self._entities.get(entity_type, [])
            if e.user_id == user_id and e.deleted_at is None
        ]

    async def find_by_names(self,
                            user_id: str,
                            names: Sequence[str],
                            entity_type: EntityType,
                            limit: int) -> List[Entity]:
        needles = [n.lower() for n in names if n]
        if not needles or limit <= 0:
            return []

        matches = [
            e for e in self._live(user_id, entity_type)
            if any(n in _label(e).lower() for n in needles)
        ]
        return matches[:limit]

    async def find_upcoming(self,
                            user_id: str,
                            entity_type: EntityType,
                            now: datetime,
                            window: Optional[timedelta],
                            limit: int) -> List[Entity]:
        if limit <= 0:
            return []

        horizon = now + window if window is not None else None
        statuses = OPEN_STATUSES.get(entity_type)

        upcoming = []
        for entity in self._live(user_id, entity_type):
            if statuses is not None and entity.status not in statuses:
                continue
            when = _when(entity)
            if when is None:
                # Undated entities only make sense without a horizon
                if horizon is None:
                    upcoming.append((1, now, entity))
                continue
            if when < now or (horizon is not None and when > horizon):
                continue
            upcoming.append((0, when, entity))

        upcoming.sort(key=lambda entry: entry[:2])
        return [entity for _, _, entity in upcoming[:limit]]

    async def find_related(self,
                           user_id: str,
                           entity_type: EntityType,
                           names: Sequence[str],
                           now: datetime,
                           limit: int) -> List[Entity]:
        needles = [n.lower() for n in names if n]
        if not needles or limit <= 0:
            return []

        related = []
        for entity in self._live(user_id, entity_type):
            when = _when(entity)
            if when is not None and when < now:
                continue
            text = _free_text(entity).lower()
            if any(n in text for n in needles):
                related.append((when or now, entity))

        related.sort(key=lambda pair: pair[0])
        return [entity for _, entity in related[:limit]]


class InMemorySemanticIndex:
    """Token-overlap stand-in for an embedding index."""

    def __init__(self):
        self.documents: Dict[Tuple[EntityType, str], Tuple[str, Entity]] = {}

    @staticmethod
    def _tokens(text: str) -> set:
        return set(re.findall(r"\w+", text.lower()))

    def index(self, entity: Entity, text: Optional[str] = None) -> None:
        content = text if text is not None else summarize(entity, entity.kind)
        self.documents[(entity.kind, entity.id)] = (content, entity)
        logger.debug(f"Indexed {entity.kind.value}:{entity.id}")

    async def search(self,
                     user_id: str,
                     query: str,
                     entity_types: Optional[Sequence[EntityType]],
                     limit: int,
                     min_similarity: float) -> List[SemanticHit]:
        query_tokens = self._tokens(query)
        if not query_tokens:
            return []

        hits = []
        for (entity_type, entity_id), (content, entity) in self.documents.items():
            if entity.user_id != user_id or entity.deleted_at is not None:
                continue
            if entity_types and entity_type not in entity_types:
                continue

            overlap = len(query_tokens & self._tokens(content)) / len(query_tokens)
            if overlap < min_similarity:
                continue

            hits.append(SemanticHit(
                entity_type=entity_type,
                entity_id=entity_id,
                score=overlap,
                snippet=content[:200],
                entity=entity,
            ))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:limit]


class InMemoryConversationStore:
    def __init__(self):
        self.messages: Dict[str, List[ConversationMessage]] = defaultdict(list)

    def add(self, conversation_id: str, message: ConversationMessage) -> None:
        self.messages[conversation_id].append(message)

    async def list_messages(self, conversation_id: str, limit: int) -> List[ConversationMessage]:
        # Newest first, like a "created_at desc" query
        newest = sorted(
            self.messages.get(conversation_id, []),
            key=lambda m: m.created_at,
            reverse=True
        )
        return newest[:limit]


class InMemoryInteractionLog:
    """Audit log keeping each user's actions as interactions."""

    def __init__(self):
        self.actions: Dict[str, List[Interaction]] = defaultdict(list)

    def record(self,
               user_id: str,
               action: str,
               entity_type: str,
               entity_id: str,
               display_name: Optional[str] = None,
               timestamp: Optional[datetime] = None,
               context: Optional[str] = None) -> Interaction:
        interaction = Interaction(
            type=map_action_to_interaction_type(action),
            entity_type=entity_type,
            entity_id=entity_id,
            display_name=display_name or entity_type or "Unknown",
            timestamp=timestamp or datetime.now(timezone.utc),
            context=context,
        )
        self.actions[user_id].append(interaction)
        return interaction

    async def recent_actions(self, user_id: str, limit: int) -> List[Interaction]:
        newest = sorted(self.actions.get(user_id, []), key=lambda i: i.timestamp, reverse=True)
        return newest[:limit]
