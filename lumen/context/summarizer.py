"""Human-readable labels and one-line summaries for entities."""

from datetime import datetime
from typing import Optional

from .models import Entity, EntityType


UNTITLED_NOTE = "Untitled Note"
NOTE_PREVIEW_CHARS = 50


def _date(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def display_name(entity: Entity, entity_type: EntityType) -> str:
    """Primary label of an entity."""
    if entity_type in (EntityType.PERSON, EntityType.PLACE,
                       EntityType.ROUTINE, EntityType.PROJECT):
        return entity.name
    elif entity_type in (EntityType.EVENT, EntityType.TASK, EntityType.DEADLINE,
                         EntityType.OPEN_LOOP, EntityType.OPPORTUNITY):
        return entity.title
    elif entity_type == EntityType.NOTE:
        return entity.title or UNTITLED_NOTE
    else:
        raise ValueError(f"Unknown entity type: {entity_type}")


def summarize(entity: Entity, entity_type: EntityType) -> str:
    """
    One line with the fields that matter most when deciding what to do.

    Examples:
        person  -> "Priya Shah CTO at Acme (priya@acme.io)"
        event   -> "Design review on 2026-10-20 at Room 4"
        task    -> "Ship release [in_progress] due 2026-10-21"
    """
    if entity_type == EntityType.PERSON:
        parts = [entity.name]
        if entity.title:
            parts.append(entity.title)
        if entity.company:
            parts.append(f"at {entity.company}")
        if entity.email:
            parts.append(f"({entity.email})")
        return " ".join(parts)

    elif entity_type == EntityType.PLACE:
        parts = [entity.name]
        if entity.address:
            parts.append(entity.address)
        if entity.city:
            parts.append(entity.city)
        return ", ".join(parts)

    elif entity_type == EntityType.EVENT:
        parts = [entity.title]
        if entity.starts_at:
            parts.append(f"on {_date(entity.starts_at)}")
        if entity.location:
            parts.append(f"at {entity.location}")
        return " ".join(parts)

    elif entity_type == EntityType.TASK:
        parts = [entity.title, f"[{entity.status}]"]
        if entity.due_date:
            parts.append(f"due {_date(entity.due_date)}")
        return " ".join(parts)

    elif entity_type == EntityType.DEADLINE:
        return f"{entity.title} due {_date(entity.due_at)} [{entity.status}]"

    elif entity_type == EntityType.ROUTINE:
        parts = [entity.name]
        if entity.frequency:
            parts.append(f"({entity.frequency})")
        parts.append(f"[{entity.status}]")
        return " ".join(parts)

    elif entity_type == EntityType.OPEN_LOOP:
        parts = [entity.title]
        if entity.due_at:
            parts.append(f"due {_date(entity.due_at)}")
        parts.append(f"[{entity.status}]")
        return " ".join(parts)

    elif entity_type == EntityType.PROJECT:
        parts = [entity.name, f"[{entity.status}]"]
        if entity.due_date:
            parts.append(f"due {_date(entity.due_date)}")
        return " ".join(parts)

    elif entity_type == EntityType.NOTE:
        title = entity.title or "Untitled"
        content = entity.content[:NOTE_PREVIEW_CHARS]
        if len(entity.content) > NOTE_PREVIEW_CHARS:
            content += "..."
        return f"{title}: {content}"

    elif entity_type == EntityType.OPPORTUNITY:
        parts = [entity.title, f"[{entity.status}]"]
        if entity.type and entity.type != "general":
            parts.append(f"({entity.type})")
        if entity.expires_at:
            parts.append(f"expires {_date(entity.expires_at)}")
        return " ".join(parts)

    else:
        raise ValueError(f"Unknown entity type: {entity_type}")
