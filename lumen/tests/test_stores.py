"""Tests for in-memory collaborators."""

from datetime import timedelta

import pytest

from lumen.context.models import EntityType, InteractionType, Note, Task
from lumen.context.stores import InMemorySemanticIndex, map_action_to_interaction_type


@pytest.mark.parametrize("action,expected", [
    ("query", InteractionType.QUERIED),
    ("create", InteractionType.CREATED),
    ("update", InteractionType.UPDATED),
    ("delete", InteractionType.DELETED),
    ("search", InteractionType.SEARCHED),
    ("open", InteractionType.VIEWED),
])
def test_action_mapping(action, expected):
    """Test audit actions map to interaction types."""
    assert map_action_to_interaction_type(action) == expected


class TestEntityStore:

    @pytest.mark.asyncio
    async def test_name_lookup_is_case_insensitive(self, entity_store, user_id):
        """Test name lookup ignores case."""
        people = await entity_store.find_by_names(user_id, ["sarah chen"], EntityType.PERSON, 5)

        assert [p.id for p in people] == ["p1"]

    @pytest.mark.asyncio
    async def test_deleted_and_foreign_entities_hidden(self, entity_store, user_id):
        """Test soft-deleted and other users' entities are hidden."""
        people = await entity_store.find_by_names(user_id, ["Sarah"], EntityType.PERSON, 10)

        assert sorted(p.id for p in people) == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_upcoming_tasks_skip_closed_and_list_undated_last(self, entity_store, user_id, now):
        """Test closed tasks are skipped and undated ones come last."""
        tasks = await entity_store.find_upcoming(user_id, EntityType.TASK, now, None, 10)

        assert [t.id for t in tasks] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_upcoming_window_excludes_undated(self, entity_store, user_id, now):
        """Test a window excludes undated tasks."""
        entity_store.add(Task(id="t4", title="Someday", user_id=user_id))

        tasks = await entity_store.find_upcoming(
            user_id, EntityType.TASK, now, timedelta(days=7), 10
        )

        assert [t.id for t in tasks] == ["t1"]

    @pytest.mark.asyncio
    async def test_related_matches_free_text(self, entity_store, user_id, now):
        """Test related lookup matches event free text."""
        events = await entity_store.find_related(
            user_id, EntityType.EVENT, ["Sarah Chen"], now, 5
        )

        assert [e.id for e in events] == ["e1"]


class TestSemanticIndex:

    @pytest.mark.asyncio
    async def test_scores_by_token_overlap(self, user_id):
        """Test the index scores by query token overlap."""
        index = InMemorySemanticIndex()
        index.index(Note(id="n1", title="Trip", content="Flights to Lisbon", user_id=user_id))
        index.index(Note(id="n2", title="Groceries", content="Milk and eggs", user_id=user_id))

        hits = await index.search(user_id, "lisbon flights", None, 10, 0.5)

        assert [h.entity_id for h in hits] == ["n1"]
        assert hits[0].score == 1.0

    @pytest.mark.asyncio
    async def test_other_users_never_match(self, user_id):
        """Test other users' documents never match."""
        index = InMemorySemanticIndex()
        index.index(Note(id="n1", content="Flights to Lisbon", user_id="someone-else"))

        assert await index.search(user_id, "lisbon", None, 10, 0.0) == []
