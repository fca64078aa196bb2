"""Tests for entity labels and one-line summaries."""

from datetime import datetime, timezone

import pytest

from lumen.context.models import (
    Deadline, EntityType, Event, Note, OpenLoop, Opportunity, Person, Place,
    Project, Routine, Task
)
from lumen.context.summarizer import display_name, summarize


DAY = datetime(2026, 11, 2, 14, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("entity,expected", [
    (Person(id="1", name="Sarah Chen", title="CTO", company="Acme", email="s@acme.io"),
     "Sarah Chen CTO at Acme (s@acme.io)"),
    (Person(id="1", name="Sarah Chen"), "Sarah Chen"),
    (Place(id="1", name="Blue Bottle", address="300 Webster St", city="Oakland"),
     "Blue Bottle, 300 Webster St, Oakland"),
    (Event(id="1", title="Design review", starts_at=DAY, location="Room 4"),
     "Design review on 2026-11-02 at Room 4"),
    (Task(id="1", title="Ship release", status="in_progress", due_date=DAY),
     "Ship release [in_progress] due 2026-11-02"),
    (Task(id="1", title="Write docs"), "Write docs [pending]"),
    (Deadline(id="1", title="Tax filing", due_at=DAY), "Tax filing due 2026-11-02 [pending]"),
    (Routine(id="1", name="Gym", frequency="weekly"), "Gym (weekly) [active]"),
    (OpenLoop(id="1", title="Reply to Bob", due_at=DAY), "Reply to Bob due 2026-11-02 [open]"),
    (Project(id="1", name="Atlas", due_date=DAY), "Atlas [active] due 2026-11-02"),
    (Note(id="1", title="Ideas", content="short"), "Ideas: short"),
    (Opportunity(id="1", title="Speaker slot", type="talk", expires_at=DAY),
     "Speaker slot [open] (talk) expires 2026-11-02"),
    (Opportunity(id="1", title="Referral"), "Referral [open]"),
])
def test_summarize(entity, expected):
    """Test one-line summaries per entity type."""
    assert summarize(entity, entity.kind) == expected


def test_long_note_is_previewed():
    """Test long note content is previewed."""
    note = Note(id="1", content="n" * 80)

    assert summarize(note, EntityType.NOTE) == f"Untitled: {'n' * 50}..."


class TestDisplayName:

    def test_named_entities(self):
        """Test named entities use their name."""
        assert display_name(Person(id="1", name="Ann"), EntityType.PERSON) == "Ann"
        assert display_name(Project(id="1", name="Atlas"), EntityType.PROJECT) == "Atlas"

    def test_titled_entities(self):
        """Test titled entities use their title."""
        task = Task(id="1", title="Ship release")
        assert display_name(task, EntityType.TASK) == "Ship release"

    def test_untitled_note(self):
        """Test notes without a title get a placeholder."""
        assert display_name(Note(id="1", content="x"), EntityType.NOTE) == "Untitled Note"

    def test_unknown_type(self):
        """Test unknown entity types are rejected."""
        with pytest.raises(ValueError):
            display_name(Note(id="1", content="x"), "widget")
