"""Data models for context retrieval and ranking."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Union


class EntityType(str, Enum):
    """Kinds of personal-data entities the engine can surface."""
    PERSON = "person"
    PLACE = "place"
    EVENT = "event"
    TASK = "task"
    DEADLINE = "deadline"
    ROUTINE = "routine"
    OPEN_LOOP = "open_loop"
    PROJECT = "project"
    NOTE = "note"
    OPPORTUNITY = "opportunity"

    @classmethod
    def parse(cls, value: str) -> Optional["EntityType"]:
        """Return the entity type named by value, or None."""
        try:
            return cls(value)
        except ValueError:
            return None


class Source(str, Enum):
    """Retrieval channel that produced an item."""
    RESOLVED_ENTITY = "resolved_entity"
    SEMANTIC_SEARCH = "semantic_search"
    TEXT_SEARCH = "text_search"
    CONVERSATION = "conversation"
    RELATED_ENTITY = "related_entity"
    RECENT_INTERACTION = "recent_interaction"
    TIME_BASED = "time_based"


class IntentCategory(str, Enum):
    SCHEDULE = "schedule"
    TASK = "task"
    COMMUNICATE = "communicate"
    QUERY = "query"
    REMIND = "remind"
    SEARCH = "search"
    SUMMARIZE = "summarize"
    UNKNOWN = "unknown"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class InteractionType(str, Enum):
    VIEWED = "viewed"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    QUERIED = "queried"
    SEARCHED = "searched"


# Domain entities

@dataclass
class Person:
    id: str
    name: str
    user_id: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    type: str = "contact"
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.PERSON


@dataclass
class Place:
    id: str
    name: str
    user_id: str = ""
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.PLACE


@dataclass
class Event:
    id: str
    title: str
    starts_at: datetime
    user_id: str = ""
    ends_at: Optional[datetime] = None
    location: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    status: str = "confirmed"
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.EVENT


@dataclass
class Task:
    id: str
    title: str
    user_id: str = ""
    status: str = "pending"  # pending|in_progress|completed|cancelled|deferred
    priority: str = "medium"
    due_date: Optional[datetime] = None
    description: Optional[str] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.TASK


@dataclass
class Deadline:
    id: str
    title: str
    due_at: datetime
    user_id: str = ""
    status: str = "pending"  # pending|completed|missed|extended
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.DEADLINE


@dataclass
class Routine:
    id: str
    name: str
    user_id: str = ""
    frequency: Optional[str] = None
    status: str = "active"
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.ROUTINE


@dataclass
class OpenLoop:
    id: str
    title: str
    user_id: str = ""
    status: str = "open"
    due_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.OPEN_LOOP


@dataclass
class Project:
    id: str
    name: str
    user_id: str = ""
    status: str = "active"
    due_date: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.PROJECT


@dataclass
class Note:
    id: str
    content: str
    user_id: str = ""
    title: Optional[str] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.NOTE


@dataclass
class Opportunity:
    id: str
    title: str
    user_id: str = ""
    status: str = "open"
    type: str = "general"
    expires_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    kind: ClassVar[EntityType] = EntityType.OPPORTUNITY


Entity = Union[
    Person, Place, Event, Task, Deadline,
    Routine, OpenLoop, Project, Note, Opportunity,
]


# Intent (produced upstream by the classifier)

@dataclass
class ExtractedEntity:
    """An entity mention pulled out of the user's message."""
    type: str  # an EntityType value, or a generic type such as "reference"
    text: str
    needs_resolution: bool = True
    confidence: float = 1.0
    value: Any = None


@dataclass
class Assumption:
    statement: str
    confidence: float


@dataclass
class Intent:
    """Structured interpretation of the user's message."""
    category: IntentCategory
    summary: str = ""
    confidence: float = 0.0
    entities: List[ExtractedEntity] = field(default_factory=list)
    assumptions: List[Assumption] = field(default_factory=list)
    action: Optional[str] = None


# Retrieval results

@dataclass
class RetrievalItem:
    """A single entity observed through one retrieval channel."""
    entity: Entity
    relevance: float  # raw, 0-1
    source: Source
    relevance_reason: Optional[str] = None

    @property
    def entity_type(self) -> EntityType:
        return self.entity.kind

    @property
    def entity_id(self) -> str:
        return self.entity.id

    @property
    def identity(self) -> Tuple[EntityType, str]:
        return (self.entity.kind, self.entity.id)

    @property
    def key(self) -> str:
        """Dedup key, ``<type>:<id>``."""
        return f"{self.entity.kind.value}:{self.entity.id}"


@dataclass
class SemanticMatch:
    entity_type: EntityType
    entity_id: str
    similarity: float
    content: str = ""
    entity: Optional[Entity] = None


@dataclass
class ConversationMessage:
    id: str
    role: MessageRole
    content: str
    created_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Interaction:
    """A prior user action taken from the audit log."""
    type: InteractionType
    entity_type: str  # EntityType value, "email" or "conversation"
    entity_id: str
    display_name: str
    timestamp: datetime
    context: Optional[str] = None


@dataclass
class RetrievalStats:
    from_resolution: int = 0
    from_related: int = 0
    from_semantic_search: int = 0
    from_time_based: int = 0
    from_conversation: int = 0
    from_recent_interactions: int = 0
    duration_ms: float = 0.0
    latency_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def total_items(self) -> int:
        return (
            self.from_resolution
            + self.from_related
            + self.from_semantic_search
            + self.from_time_based
            + self.from_conversation
            + self.from_recent_interactions
        )


def empty_collections() -> Dict[EntityType, List[RetrievalItem]]:
    """One empty list per entity type."""
    return {entity_type: [] for entity_type in EntityType}


@dataclass(frozen=True)
class ContextPackage:
    """Everything one retrieval call gathered, before ranking."""
    items: Dict[EntityType, List[RetrievalItem]] = field(default_factory=empty_collections)
    conversation: List[ConversationMessage] = field(default_factory=list)
    semantic_matches: List[SemanticMatch] = field(default_factory=list)
    recent_interactions: List[Interaction] = field(default_factory=list)
    stats: RetrievalStats = field(default_factory=RetrievalStats)

    def of_type(self, entity_type: EntityType) -> List[RetrievalItem]:
        return self.items.get(entity_type, [])

    def all_items(self) -> Iterator[RetrievalItem]:
        """Walk every collection in EntityType declaration order."""
        for entity_type in EntityType:
            yield from self.items.get(entity_type, [])


@dataclass
class RankedItem:
    """Merged, scored view of every RetrievalItem sharing one identity."""
    entity_type: EntityType
    entity_id: str
    display_name: str
    relevance: float
    summary: str
    entity: Entity
    sources: List[Source] = field(default_factory=list)
    relevance_reasons: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type.value,
            'entity_id': self.entity_id,
            'display_name': self.display_name,
            'relevance': round(self.relevance, 4),
            'summary': self.summary,
            'sources': [s.value for s in self.sources],
            'relevance_reasons': list(self.relevance_reasons),
        }


@dataclass
class RankedContext:
    top_items: List[RankedItem]
    context_summary: str
    estimated_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'top_items': [item.to_dict() for item in self.top_items],
            'context_summary': self.context_summary,
            'estimated_tokens': self.estimated_tokens,
        }


# Upstream entity resolution

@dataclass
class ResolvedEntity:
    """One mention as resolved by the upstream entity resolver."""
    mention: ExtractedEntity
    match: Optional[Entity] = None
    confidence: float = 0.0


@dataclass
class ResolutionResult:
    resolved: List[ResolvedEntity] = field(default_factory=list)
    unresolved: List[ExtractedEntity] = field(default_factory=list)
