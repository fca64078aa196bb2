"""Multi-source context retrieval with fan-out/fan-in over independent strategies.

One call to ``retrieve_context`` launches five strategies at once:

- resolution:   entities the user named, matched by name in the entity store
- semantic:     similarity search over the intent summary (optional, degrades to empty)
- time_based:   upcoming events, or due tasks and deadlines, depending on intent
- conversation: recent messages of the current conversation
- interactions: the user's recent actions

All five run to completion before anything is merged. Any failure other than
semantic search aborts the call and cancels whatever is still running.
Ranking is a separate step (``rank_context``) so a package can be re-ranked
against another intent without querying again.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from .config import ContextConfig, RetrievalOptions
from .errors import RetrievalFailedError, RetrievalTimeoutError
from .interfaces import ConversationStore, EntityStore, InteractionLog, SemanticSearch
from .models import (
    ContextPackage, ConversationMessage, EntityType, Intent, IntentCategory,
    Interaction, RankedContext, ResolutionResult, RetrievalItem, RetrievalStats,
    SemanticMatch, Source, empty_collections,
)
from .ranking import (
    RelevanceScorer, calculate_time_relevance, merge_and_rank, rank_semantic_matches
)
from .summary import build_summary


MENTION_RELEVANCE = 0.9
RELATED_RELEVANCE = 0.6
UNDATED_TASK_RELEVANCE = 0.5


class _StrategyFailure(Exception):
    def __init__(self, strategy: str, error: Exception):
        super().__init__(f"{strategy}: {error}")
        self.strategy = strategy
        self.error = error


def merge_with_dedup(*groups: Sequence[RetrievalItem]) -> Dict[EntityType, List[RetrievalItem]]:
    """
    Merge item lists per entity type, one item per identity.

    For each identity the instance with the highest raw relevance wins;
    on a tie the first one seen is kept.
    """
    best: Dict[str, RetrievalItem] = {}
    for group in groups:
        for item in group:
            existing = best.get(item.key)
            if existing is None or item.relevance > existing.relevance:
                best[item.key] = item

    merged = empty_collections()
    for item in best.values():
        merged[item.entity_type].append(item)
    for items in merged.values():
        items.sort(key=lambda i: i.relevance, reverse=True)
    return merged


class ContextRetrievalService:
    """
    Gathers personal-data context for one user turn.

    The service holds no per-call state; concurrent calls are safe as long
    as the collaborators are.
    """

    def __init__(self,
                 entity_store: EntityStore,
                 semantic_search: SemanticSearch,
                 conversations: ConversationStore,
                 interactions: InteractionLog,
                 config: Optional[ContextConfig] = None,
                 scorer: Optional[RelevanceScorer] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize retrieval service.

        Args:
            entity_store: Name and time lookups over people, events, tasks, ...
            semantic_search: Embedding search; may be unavailable
            conversations: Conversation message history
            interactions: Audit log of user actions
            config: Engine configuration; built-in defaults when omitted
            scorer: Relevance scorer; built from config.ranking when omitted
            clock: Source of "now", timezone-aware
        """
        self.entity_store = entity_store
        self.semantic_search = semantic_search
        self.conversations = conversations
        self.interactions = interactions
        self.config = config or ContextConfig()
        self.scorer = scorer or RelevanceScorer(self.config.ranking)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._latency_histogram: List[float] = []

    async def retrieve_context(self,
                               user_id: str,
                               intent: Intent,
                               options: Optional[RetrievalOptions] = None) -> ContextPackage:
        """
        Run all strategies concurrently and merge their results.

        Raises:
            RetrievalFailedError: a required strategy failed
            RetrievalTimeoutError: options.timeout_ms elapsed first
        """
        start_time = time.perf_counter()
        opts = self.config.retrieval.merged(options)
        now = self._clock()
        category = intent.category.value

        logger.debug(
            f"Retrieving context for {user_id}: intent={category}, "
            f"mentions={len(intent.entities)}"
        )

        strategies = {
            'resolution': self._resolve_mentions(user_id, intent, opts, now),
            'semantic': self._search_semantic_with_intent(user_id, intent, opts),
            'time_based': self._retrieve_time_based(user_id, intent, opts, now),
            'conversation': self.get_conversation_context(
                opts.conversation_id, opts.max_conversation_messages
            ),
            'interactions': self.get_recent_interactions(
                user_id, opts.max_recent_interactions
            ),
        }

        try:
            results, latencies = await self._run_strategies(strategies, opts.timeout_ms)
        except asyncio.TimeoutError:
            logger.error(f"Context retrieval for {user_id} timed out after {opts.timeout_ms}ms")
            raise RetrievalTimeoutError(user_id, category, opts.timeout_ms)
        except _StrategyFailure as failure:
            logger.error(
                f"Context retrieval for {user_id} failed in {failure.strategy}: {failure.error}"
            )
            raise RetrievalFailedError(
                user_id, category, failure.strategy, failure.error
            ) from failure.error

        resolved_items = results['resolution']
        semantic_matches, semantic_items = results['semantic']
        time_items = results['time_based']
        conversation = results['conversation']
        recent_interactions = results['interactions']

        stats = RetrievalStats(
            from_resolution=sum(1 for i in resolved_items if i.source == Source.RESOLVED_ENTITY),
            from_related=sum(1 for i in resolved_items if i.source == Source.RELATED_ENTITY),
            from_semantic_search=len(semantic_matches),
            from_time_based=len(time_items),
            from_conversation=len(conversation),
            from_recent_interactions=len(recent_interactions),
            latency_ms=latencies,
        )
        stats.duration_ms = (time.perf_counter() - start_time) * 1000

        package = ContextPackage(
            items=merge_with_dedup(resolved_items, semantic_items, time_items),
            conversation=conversation,
            semantic_matches=semantic_matches,
            recent_interactions=recent_interactions,
            stats=stats,
        )

        self._track_latency(stats.duration_ms)
        logger.info(
            f"Context retrieval complete for {user_id}: "
            f"{stats.total_items} items in {stats.duration_ms:.1f}ms"
        )

        return package

    async def retrieve_from_resolution(self,
                                       user_id: str,
                                       resolution: ResolutionResult,
                                       options: Optional[RetrievalOptions] = None,
                                       intent: Optional[Intent] = None) -> ContextPackage:
        """
        Build a package straight from an upstream entity-resolution result.

        The intent only labels errors; without one they are tagged "unknown".
        """
        start_time = time.perf_counter()
        opts = self.config.retrieval.merged(options)
        category = intent.category.value if intent else IntentCategory.UNKNOWN.value

        items = [
            RetrievalItem(
                entity=resolved.match,
                relevance=resolved.confidence,
                source=Source.RESOLVED_ENTITY,
                relevance_reason="Directly resolved from message",
            )
            for resolved in resolution.resolved
            if resolved.match is not None
        ]

        related: List[RetrievalItem] = []
        if opts.include_related:
            try:
                related = await self._fetch_related(user_id, items, opts, self._clock())
            except Exception as e:
                logger.error(f"Related entity lookup for {user_id} failed: {e}")
                raise RetrievalFailedError(user_id, category, 'related', e) from e

        stats = RetrievalStats(from_resolution=len(items), from_related=len(related))
        stats.duration_ms = (time.perf_counter() - start_time) * 1000

        return ContextPackage(items=merge_with_dedup(items, related), stats=stats)

    async def search_semantic(self,
                              user_id: str,
                              query: str,
                              entity_types: Optional[Sequence[EntityType]] = None,
                              limit: Optional[int] = None,
                              min_similarity: Optional[float] = None,
                              timeout_ms: Optional[float] = None) -> List[SemanticMatch]:
        """
        Semantic search that never fails.

        Any error, including an elapsed timeout, is logged and turned into
        an empty result; semantic search is an enrichment, not a requirement.
        """
        defaults = self.config.retrieval
        limit = limit if limit is not None else defaults.max_semantic_matches
        if min_similarity is None:
            min_similarity = defaults.min_similarity

        try:
            search = self.semantic_search.search(
                user_id, query, entity_types, limit, min_similarity
            )
            if timeout_ms is not None:
                hits = await asyncio.wait_for(search, timeout=timeout_ms / 1000.0)
            else:
                hits = await search

            return [
                SemanticMatch(
                    entity_type=EntityType(hit.entity_type),
                    entity_id=hit.entity_id,
                    similarity=float(hit.score),
                    content=hit.snippet or "",
                    entity=hit.entity,
                )
                for hit in hits
            ]
        except asyncio.TimeoutError:
            logger.warning(f"Semantic search timed out after {timeout_ms}ms for {user_id}")
            return []
        except Exception as e:
            logger.warning(f"Semantic search failed for {user_id} ({query!r}): {e}")
            return []

    async def get_conversation_context(self,
                                       conversation_id: Optional[str],
                                       max_messages: int) -> List[ConversationMessage]:
        """Recent messages of a conversation, oldest first."""
        if not conversation_id or max_messages <= 0:
            return []

        messages = await self.conversations.list_messages(conversation_id, max_messages)
        return sorted(messages, key=lambda m: m.created_at)

    async def get_recent_interactions(self, user_id: str, limit: int) -> List[Interaction]:
        if limit <= 0:
            return []
        return await self.interactions.recent_actions(user_id, limit)

    def rank_context(self,
                     package: ContextPackage,
                     intent: Intent,
                     max_tokens: Optional[int] = None) -> RankedContext:
        """Score, merge and summarize a package for the model's context window."""
        ranked = merge_and_rank(list(package.all_items()), intent, self.scorer)
        summary, tokens = build_summary(
            ranked,
            package.conversation,
            package.recent_interactions,
            max_tokens=max_tokens,
            config=self.config.summary,
        )
        return RankedContext(top_items=ranked, context_summary=summary, estimated_tokens=tokens)

    # Strategies

    async def _resolve_mentions(self,
                                user_id: str,
                                intent: Intent,
                                opts: RetrievalOptions,
                                now: datetime) -> List[RetrievalItem]:
        """Look up every entity the user mentioned by name."""
        names_by_type: Dict[EntityType, List[str]] = {}
        for mention in intent.entities:
            entity_type = EntityType.parse(mention.type)
            if entity_type is None or not mention.text:
                continue
            names_by_type.setdefault(entity_type, []).append(mention.text)

        if not names_by_type:
            return []

        entity_types = list(names_by_type)
        found = await asyncio.gather(*(
            self.entity_store.find_by_names(
                user_id, names_by_type[t], t, opts.limit_for(t)
            )
            for t in entity_types
        ))

        items = [
            RetrievalItem(
                entity=entity,
                relevance=MENTION_RELEVANCE,
                source=Source.RESOLVED_ENTITY,
                relevance_reason="Mentioned in message",
            )
            for entities in found
            for entity in entities
        ]

        if opts.include_related:
            items.extend(await self._fetch_related(user_id, items, opts, now))

        return items

    async def _fetch_related(self,
                             user_id: str,
                             items: List[RetrievalItem],
                             opts: RetrievalOptions,
                             now: datetime) -> List[RetrievalItem]:
        """Upcoming events that mention any resolved person."""
        names = [i.entity.name for i in items if i.entity_type == EntityType.PERSON]
        if not names:
            return []

        seen = {i.key for i in items}
        events = await self.entity_store.find_related(
            user_id, EntityType.EVENT, names, now, opts.limit_for(EntityType.EVENT)
        )

        related = []
        for event in events:
            item = RetrievalItem(
                entity=event,
                relevance=RELATED_RELEVANCE,
                source=Source.RELATED_ENTITY,
                relevance_reason="Related to mentioned person",
            )
            if item.key not in seen:
                seen.add(item.key)
                related.append(item)
        return related

    async def _search_semantic_with_intent(self,
                                           user_id: str,
                                           intent: Intent,
                                           opts: RetrievalOptions
                                           ) -> Tuple[List[SemanticMatch], List[RetrievalItem]]:
        query = (intent.summary or "").strip()
        if not opts.use_semantic_search or not query:
            return [], []

        matches = await self.search_semantic(
            user_id,
            query,
            entity_types=opts.focus_entity_types,
            limit=opts.max_semantic_matches,
            min_similarity=opts.min_similarity,
            timeout_ms=opts.semantic_timeout_ms,
        )
        try:
            ranked = rank_semantic_matches(matches, intent, self.scorer)
            items = [
                RetrievalItem(
                    entity=m.entity,
                    relevance=m.similarity,
                    source=Source.SEMANTIC_SEARCH,
                    relevance_reason="Semantically similar",
                )
                for m in ranked
                if isinstance(getattr(m.entity, 'kind', None), EntityType)
            ]
        except Exception as e:
            logger.warning(f"Discarding semantic matches for {user_id}: {e}")
            return [], []

        return ranked, items

    async def _retrieve_time_based(self,
                                   user_id: str,
                                   intent: Intent,
                                   opts: RetrievalOptions,
                                   now: datetime) -> List[RetrievalItem]:
        """Upcoming events for scheduling, due tasks and deadlines for task work."""
        items: List[RetrievalItem] = []

        if intent.category == IntentCategory.SCHEDULE:
            events = await self.entity_store.find_upcoming(
                user_id,
                EntityType.EVENT,
                now,
                timedelta(days=opts.upcoming_window_days),
                opts.limit_for(EntityType.EVENT),
            )
            items.extend(
                RetrievalItem(
                    entity=e,
                    relevance=calculate_time_relevance(e.starts_at, now),
                    source=Source.TIME_BASED,
                    relevance_reason="Upcoming event",
                )
                for e in events
            )

        elif intent.category in (IntentCategory.TASK, IntentCategory.REMIND):
            tasks, deadlines = await asyncio.gather(
                self.entity_store.find_upcoming(
                    user_id, EntityType.TASK, now, None, opts.limit_for(EntityType.TASK)
                ),
                self.entity_store.find_upcoming(
                    user_id, EntityType.DEADLINE, now, None, opts.limit_for(EntityType.DEADLINE)
                ),
            )
            items.extend(
                RetrievalItem(
                    entity=t,
                    relevance=(
                        calculate_time_relevance(t.due_date, now)
                        if t.due_date else UNDATED_TASK_RELEVANCE
                    ),
                    source=Source.TIME_BASED,
                    relevance_reason="Upcoming task",
                )
                for t in tasks
            )
            items.extend(
                RetrievalItem(
                    entity=d,
                    relevance=calculate_time_relevance(d.due_at, now),
                    source=Source.TIME_BASED,
                    relevance_reason="Upcoming deadline",
                )
                for d in deadlines
            )

        return items

    # Fan-out / fan-in

    async def _timed(self, name: str, coro) -> Tuple[str, Any, float]:
        """Run one strategy, tagging failures with its name."""
        start = time.perf_counter()
        try:
            result = await coro
        except Exception as e:
            raise _StrategyFailure(name, e) from e
        return name, result, (time.perf_counter() - start) * 1000

    async def _run_strategies(self,
                              strategies: Dict[str, Any],
                              timeout_ms: Optional[float]
                              ) -> Tuple[Dict[str, Any], Dict[str, float]]:
        """
        Wait for every strategy; fail fast on the first error.

        Returns:
            (results by strategy name, latency in ms by strategy name)
        """
        tasks = [
            asyncio.create_task(self._timed(name, coro))
            for name, coro in strategies.items()
        ]
        timeout = timeout_ms / 1000.0 if timeout_ms is not None else None

        try:
            done, pending = await asyncio.wait(
                tasks,
                timeout=timeout,
                return_when=asyncio.FIRST_EXCEPTION
            )
        except asyncio.CancelledError:
            await self._cancel(tasks)
            raise

        # Report the first failure in launch order
        for task in tasks:
            if task in done and task.exception() is not None:
                await self._cancel(pending)
                raise task.exception()

        if pending:
            await self._cancel(pending)
            raise asyncio.TimeoutError()

        results: Dict[str, Any] = {}
        latencies: Dict[str, float] = {}
        for task in tasks:
            name, result, latency = task.result()
            results[name] = result
            latencies[name] = latency
        return results, latencies

    @staticmethod
    async def _cancel(tasks) -> None:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Performance tracking

    def _track_latency(self, latency_ms: float) -> None:
        self._latency_histogram.append(latency_ms)
        if len(self._latency_histogram) > 1000:
            self._latency_histogram = self._latency_histogram[-1000:]

    def get_performance_stats(self) -> Dict[str, float]:
        """Latency percentiles over recent retrievals."""
        if not self._latency_histogram:
            return {}

        sorted_latencies = sorted(self._latency_histogram)
        n = len(sorted_latencies)

        return {
            "p50": sorted_latencies[int(n * 0.5)],
            "p95": sorted_latencies[int(n * 0.95)],
            "p99": sorted_latencies[int(n * 0.99)] if n > 100 else sorted_latencies[-1],
            "mean": sum(sorted_latencies) / n,
            "min": sorted_latencies[0],
            "max": sorted_latencies[-1]
        }
