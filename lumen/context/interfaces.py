"""Collaborators the engine reads from. All are read-only and async."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Protocol, Sequence

from .models import ConversationMessage, Entity, EntityType, Interaction


@dataclass
class SemanticHit:
    """Raw hit from the semantic index."""
    entity_type: EntityType
    entity_id: str
    score: float
    snippet: str = ""
    entity: Optional[Entity] = None


class EntityStore(Protocol):
    """Query side of the entity store. Soft-deleted records are never returned."""

    async def find_by_names(self,
                            user_id: str,
                            names: Sequence[str],
                            entity_type: EntityType,
                            limit: int) -> List[Entity]:
        """Entities whose label contains any of names, case-insensitively."""
        ...

    async def find_upcoming(self,
                            user_id: str,
                            entity_type: EntityType,
                            now: datetime,
                            window: Optional[timedelta],
                            limit: int) -> List[Entity]:
        """
        Open entities due or starting from now, soonest first.

        With no window, undated entities are included after dated ones.
        """
        ...

    async def find_related(self,
                           user_id: str,
                           entity_type: EntityType,
                           names: Sequence[str],
                           now: datetime,
                           limit: int) -> List[Entity]:
        """Upcoming entities whose free text mentions any of names."""
        ...


class SemanticSearch(Protocol):
    async def search(self,
                     user_id: str,
                     query: str,
                     entity_types: Optional[Sequence[EntityType]],
                     limit: int,
                     min_similarity: float) -> List[SemanticHit]:
        ...


class ConversationStore(Protocol):
    async def list_messages(self, conversation_id: str, limit: int) -> List[ConversationMessage]:
        """The newest `limit` messages, in any order."""
        ...


class InteractionLog(Protocol):
    async def recent_actions(self, user_id: str, limit: int) -> List[Interaction]:
        """The user's most recent actions, newest first."""
        ...
