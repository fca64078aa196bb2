"""Configuration management for the context engine."""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import EntityType, IntentCategory, Source


DEFAULT_LIMITS: Dict[EntityType, int] = {
    EntityType.PERSON: 5,
    EntityType.EVENT: 5,
    EntityType.TASK: 10,
    EntityType.DEADLINE: 5,
    EntityType.PLACE: 3,
    EntityType.ROUTINE: 5,
    EntityType.OPEN_LOOP: 5,
    EntityType.PROJECT: 5,
    EntityType.NOTE: 5,
    EntityType.OPPORTUNITY: 5,
}

DEFAULT_SOURCE_WEIGHTS: Dict[Source, float] = {
    Source.RESOLVED_ENTITY: 1.0,
    Source.SEMANTIC_SEARCH: 0.8,
    Source.TEXT_SEARCH: 0.7,
    Source.CONVERSATION: 0.6,
    Source.RELATED_ENTITY: 0.5,
    Source.RECENT_INTERACTION: 0.4,
    Source.TIME_BASED: 0.3,
}

DEFAULT_INTENT_ENTITY_WEIGHTS: Dict[IntentCategory, Dict[EntityType, float]] = {
    IntentCategory.SCHEDULE: {
        EntityType.EVENT: 1.2,
        EntityType.PERSON: 1.1,
        EntityType.PLACE: 1.0,
    },
    IntentCategory.TASK: {
        EntityType.TASK: 1.3,
        EntityType.DEADLINE: 1.2,
        EntityType.PROJECT: 1.1,
    },
    IntentCategory.COMMUNICATE: {
        EntityType.PERSON: 1.2,
    },
    IntentCategory.REMIND: {
        EntityType.TASK: 1.2,
        EntityType.DEADLINE: 1.2,
        EntityType.ROUTINE: 1.1,
    },
    IntentCategory.SUMMARIZE: {
        EntityType.PROJECT: 1.1,
        EntityType.NOTE: 1.1,
    },
}


def _check_unit_interval(name: str, v: Optional[float]) -> Optional[float]:
    if v is not None and not 0 <= v <= 1:
        raise ValueError(f"{name} must be between 0 and 1")
    return v


class RetrievalOptions(BaseModel):
    """Per-call retrieval knobs. Unset fields fall back to configured defaults."""

    conversation_id: Optional[str] = None
    max_per_type: Dict[EntityType, int] = Field(default_factory=lambda: dict(DEFAULT_LIMITS))
    max_semantic_matches: int = 10
    max_conversation_messages: int = 10
    max_recent_interactions: int = 5
    use_semantic_search: bool = True
    min_similarity: float = 0.5
    focus_entity_types: Optional[List[EntityType]] = None
    include_related: bool = True
    upcoming_window_days: int = 7
    timeout_ms: Optional[float] = None
    semantic_timeout_ms: Optional[float] = None

    @field_validator('min_similarity')
    @classmethod
    def validate_min_similarity(cls, v: float) -> float:
        return _check_unit_interval('min_similarity', v)

    @field_validator('max_per_type')
    @classmethod
    def validate_limits(cls, v: Dict[EntityType, int]) -> Dict[EntityType, int]:
        for entity_type, limit in v.items():
            if limit < 0:
                raise ValueError(f"limit for {entity_type.value} must not be negative")
        return v

    @field_validator('timeout_ms', 'semantic_timeout_ms')
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    def limit_for(self, entity_type: EntityType) -> int:
        return self.max_per_type.get(entity_type, DEFAULT_LIMITS[entity_type])

    def merged(self, overrides: Optional["RetrievalOptions"]) -> "RetrievalOptions":
        """Layer the fields explicitly set on overrides over these options."""
        if overrides is None:
            return self.model_copy(deep=True)

        update = overrides.model_dump(exclude_unset=True)
        if 'max_per_type' in update:
            update['max_per_type'] = {**self.max_per_type, **overrides.max_per_type}
        return self.model_copy(update=update, deep=True)


class WeightProfile(BaseModel):
    """Scoring tables. Frozen so one profile can be shared across scorers."""

    model_config = ConfigDict(frozen=True)

    source_weights: Dict[Source, float] = Field(
        default_factory=lambda: dict(DEFAULT_SOURCE_WEIGHTS)
    )
    intent_entity_weights: Dict[IntentCategory, Dict[EntityType, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_INTENT_ENTITY_WEIGHTS.items()}
    )
    mention_boost: float = 1.2
    mention_wildcard: str = "reference"

    @field_validator('source_weights')
    @classmethod
    def validate_source_weights(cls, v: Dict[Source, float]) -> Dict[Source, float]:
        missing = [s.value for s in Source if s not in v]
        if missing:
            raise ValueError(f"source_weights missing: {', '.join(missing)}")
        if any(w < 0 for w in v.values()):
            raise ValueError("source weights must not be negative")
        return v

    @field_validator('intent_entity_weights')
    @classmethod
    def validate_intent_weights(cls, v):
        for weights in v.values():
            if any(w < 0 for w in weights.values()):
                raise ValueError("intent entity weights must not be negative")
        return v

    @field_validator('mention_boost')
    @classmethod
    def validate_mention_boost(cls, v: float) -> float:
        if v < 0:
            raise ValueError("mention_boost must not be negative")
        return v


class SummaryConfig(BaseModel):
    max_tokens: int = 2000
    high_relevance_threshold: float = 0.6
    max_items: int = 10
    max_messages: int = 5
    message_chars: int = 100
    max_interactions: int = 5

    @field_validator('high_relevance_threshold')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        return _check_unit_interval('high_relevance_threshold', v)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: Optional[Path] = None
    rotation: str = "1 day"
    retention: str = "7 days"


class ContextConfig(BaseModel):
    """Main configuration for the context engine."""

    retrieval: RetrievalOptions = Field(default_factory=RetrievalOptions)
    ranking: WeightProfile = Field(default_factory=WeightProfile)
    summary: SummaryConfig = Field(default_factory=SummaryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "ContextConfig":
        """Load configuration from YAML file."""
        if config_path is None:
            candidates = [
                Path("lumen.yaml"),
                Path.home() / ".config" / "lumen" / "config.yaml",
                Path("/etc/lumen/config.yaml"),
            ]
            for candidate in candidates:
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                raise FileNotFoundError(
                    f"No config file found. Searched: {[str(c) for c in candidates]}"
                )

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            yaml.safe_dump(self.model_dump(mode='json'), f, default_flow_style=False)


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Route loguru output to stderr and, optionally, a rotating file."""
    config = config or LoggingConfig()

    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=config.level
    )

    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file,
            rotation=config.rotation,
            retention=config.retention,
            level="DEBUG"
        )
