"""Shared fixtures for context engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from lumen.context.config import ContextConfig
from lumen.context.models import (
    ConversationMessage, Deadline, Event, MessageRole, Note, Person, Place, Task
)
from lumen.context.retrieval import ContextRetrievalService
from lumen.context.stores import (
    InMemoryConversationStore, InMemoryEntityStore,
    InMemoryInteractionLog, InMemorySemanticIndex
)


USER = "user-1"
NOW = datetime(2026, 10, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def user_id():
    return USER


@pytest.fixture
def sarah():
    return Person(id="p1", name="Sarah Chen", user_id=USER,
                  title="CTO", company="Acme", email="sarah@acme.io")


@pytest.fixture
def entity_store(sarah):
    """Store with one user's people, calendar and tasks, plus a stranger."""
    return InMemoryEntityStore([
        sarah,
        Person(id="p2", name="Sarah Miller", user_id=USER),
        Person(id="p3", name="Sarah Chen", user_id="someone-else"),
        Person(id="p4", name="Sarah Gone", user_id=USER, deleted_at=NOW),
        Place(id="pl1", name="Blue Bottle", user_id=USER, city="Oakland"),
        Event(id="e1", title="Design review", user_id=USER,
              starts_at=NOW + timedelta(hours=2), location="Room 4",
              description="Walk through the roadmap with Sarah Chen"),
        Event(id="e2", title="Offsite", user_id=USER, starts_at=NOW + timedelta(days=3)),
        Event(id="e3", title="Retro", user_id=USER, starts_at=NOW + timedelta(days=20)),
        Event(id="e4", title="Standup", user_id=USER, starts_at=NOW - timedelta(days=1),
              notes="Sarah Chen presenting"),
        Task(id="t1", title="Ship release", user_id=USER, due_date=NOW + timedelta(hours=12)),
        Task(id="t2", title="Write docs", user_id=USER),
        Task(id="t3", title="Old chore", user_id=USER, status="completed",
             due_date=NOW + timedelta(days=1)),
        Deadline(id="d1", title="Tax filing", user_id=USER, due_at=NOW + timedelta(days=10)),
        Note(id="n1", title="Ideas", content="Quarterly planning thoughts", user_id=USER),
    ])


@pytest.fixture
def semantic_index():
    return InMemorySemanticIndex()


@pytest.fixture
def conversations(now):
    store = InMemoryConversationStore()
    for i, text in enumerate(["Hi", "Can you help me plan the week?", "Sure"]):
        store.add("c1", ConversationMessage(
            id=f"m{i}",
            role=MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT,
            content=text,
            created_at=now - timedelta(minutes=10 - i),
        ))
    return store


@pytest.fixture
def interaction_log(now):
    log = InMemoryInteractionLog()
    log.record(USER, "update", "task", "t1", "Ship release", timestamp=now - timedelta(hours=1))
    log.record(USER, "query", "person", "p1", "Sarah Chen", timestamp=now - timedelta(minutes=5))
    return log


@pytest.fixture
def service(entity_store, semantic_index, conversations, interaction_log, now):
    return ContextRetrievalService(
        entity_store,
        semantic_index,
        conversations,
        interaction_log,
        config=ContextConfig(),
        clock=lambda: now,
    )
