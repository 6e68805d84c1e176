"""
Request pipeline shared by the listing, platform, search and queue endpoints
"""

import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from fastapi.encoders import jsonable_encoder

from models.database import Comment
from schemas.responses import CommentOut
from services import facets as facet_service
from services.comment_filters import CommentFilters, RequestKind
from services.comment_store import LISTING_TIMEOUT_MESSAGE, SEARCH_TIMEOUT_MESSAGE, CommentStore
from services.field_encryption import FieldEncryptionAdapter, encryption_context
from services.ranking import RankedComment, RelevanceRanker, order_by_score
from services.result_cache import ResultCache, cache_key
from services.sentiment import moderation_priority, sentiment_bucket
from services.similarity import SimilarityScorer
from services.statistics import FilteredCounts, engagement_total, moderation_queue_statistics, summarize
from services.suggestions import SuggestionStrategy, safe_suggest
from utils.auth import AuthenticatedUser
from utils.config import Config
from utils.exceptions import AuthorizationError, CommentServiceError, DecryptionError, NotFoundError, ValidationError
from utils.monitoring import track_search
from utils.response_envelope import format_success_response
from utils.structured_logging import get_structured_logger, truncate_for_log

logger = get_structured_logger(__name__)

EMPTY_SEARCH_MESSAGE = "No comments found matching your search criteria"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def _pagination(filters: CommentFilters, total: int, available: Optional[int] = None) -> Dict[str, Any]:
    """
    Pagination block; available is how many rows can actually be paged
    through when a capped candidate set holds fewer than total
    """
    pageable = total if available is None else available
    pagination = {
        "limit": filters.limit,
        "offset": filters.offset,
        "total": total,
        "hasMore": filters.offset + filters.limit < pageable,
    }
    if pageable < total:
        pagination["truncated"] = True
    return pagination


class CommentPipeline:
    """
    validated filters -> store -> rank / facet / summarize -> mask -> body

    Each endpoint supplies its RequestKind and only adds the extra fields it
    owns (statistics, facets, ranking); everything else is shared.

    Args:
        store: Request-scoped comment store
        encryption: Field encryption adapter
        config: Application configuration
        ranker: Lexical relevance ranker
        scorer: Semantic similarity scorer
        suggester: Strategy for empty-result suggestions
        cache: Search result cache
    """

    def __init__(
        self,
        store: CommentStore,
        encryption: FieldEncryptionAdapter,
        config: Config,
        ranker: RelevanceRanker,
        scorer: SimilarityScorer,
        suggester: SuggestionStrategy,
        cache: ResultCache,
    ):
        self.store = store
        self.encryption = encryption
        self.config = config
        self.ranker = ranker
        self.scorer = scorer
        self.suggester = suggester
        self.cache = cache

    # Output shaping

    def serialize(
        self,
        comments: Sequence[Comment],
        ranked: Optional[Sequence[RankedComment]] = None
    ) -> List[Dict[str, Any]]:
        """
        Convert rows to response dicts with masked platform user ids

        A field that fails to decrypt is returned as null. If every encrypted
        field in the batch fails the request fails with DecryptionError.
        """
        scores = {id(item.comment): item for item in ranked or []}
        encrypted_fields = 0
        failures = 0
        items: List[Dict[str, Any]] = []

        for comment in comments:
            masked = None
            if comment.platform_user_id:
                encrypted_fields += 1
                plain = self.encryption.decrypt_or_none(
                    comment.platform_user_id, encryption_context(comment.user_id, comment.platform)
                )
                if plain is None:
                    failures += 1
                else:
                    masked = self.encryption.mask(plain)

            score = scores.get(id(comment))
            item = CommentOut(
                id=str(comment.id),
                platform=comment.platform,
                platform_comment_id=comment.platform_comment_id,
                platform_post_id=comment.platform_post_id,
                platform_user_id=masked,
                author_username=comment.author_username,
                content=comment.content,
                status=comment.status,
                sentiment_score=comment.sentiment_score,
                sentiment=sentiment_bucket(comment.sentiment_score),
                engagement_metrics=comment.engagement_metrics or {},
                moderation_flags=comment.moderation_flags or [],
                moderation_reason=comment.moderation_reason,
                moderated_at=comment.moderated_at,
                created_at_platform=comment.created_at_platform,
                created_at=comment.created_at,
                updated_at=comment.updated_at,
                relevance_score=score.relevance_score if score else None,
                semantic_similarity=score.semantic_similarity if score else None,
            ).model_dump()
            for transient in ("relevance_score", "semantic_similarity"):
                if item[transient] is None:
                    item.pop(transient)
            items.append(item)

        if failures:
            logger.warning("Encrypted fields unavailable", failed=failures, total=encrypted_fields)
        if encrypted_fields and failures == encrypted_fields:
            raise DecryptionError()
        return items

    # Listing

    async def list_comments(self, filters: CommentFilters, user: AuthenticatedUser) -> Dict[str, Any]:
        """List and platform-scoped list; the latter adds platform and statistics"""
        rows, total = await self.store.list_page(filters, user.user_id)
        data = self.serialize(rows)

        extra: Dict[str, Any] = {}
        if filters.kind == RequestKind.PLATFORM:
            extra["platform"] = filters.platforms[0]
            if filters.include_statistics:
                counts = await self.store.aggregate(filters, user.user_id)
                # Engagement sums need the rows themselves, so they cover a capped sample
                sample = await self.store.fetch_candidates(
                    filters, user.user_id, self.config.search_candidate_cap, LISTING_TIMEOUT_MESSAGE
                )
                extra["statistics"] = summarize(sample, counts)

        logger.info(
            "Comments listed",
            kind=filters.kind.value,
            returned=len(data),
            total=total,
        )
        return format_success_response(
            data,
            pagination=_pagination(filters, total),
            filters=filters.echo(),
            **extra,
        )

    # Search

    async def search(self, filters: CommentFilters, user: AuthenticatedUser) -> Dict[str, Any]:
        """
        Full-text search with ranking, facets and optional semantic scoring

        Identical requests from the same user inside the cache TTL are served
        from the result cache.
        """
        started = time.perf_counter()
        key = cache_key(user.user_id, filters.cache_key_parts())
        body, cached = await self.cache.get_or_compute(key, lambda: self._search(filters, user))

        search_time_ms = 0.0 if cached else body.get("performance", {}).get("search_time_ms", 0.0)
        body = dict(body)
        body["performance"] = {
            "search_time_ms": search_time_ms,
            "total_time_ms": _elapsed_ms(started),
            "cached": cached,
        }
        track_search(filters.search_type or "plain", body["performance"]["total_time_ms"] / 1000, cached)
        return body

    async def _search(self, filters: CommentFilters, user: AuthenticatedUser) -> Dict[str, Any]:
        started = time.perf_counter()
        parsed = filters.parsed_query
        cap = self.config.search_candidate_cap
        # One row past the cap tells whether the candidate set was cut short
        candidates = await self.store.fetch_candidates(filters, user.user_id, cap + 1)
        truncated = len(candidates) > cap
        candidates = candidates[:cap]

        if filters.engagement_min is not None:
            candidates = [c for c in candidates if engagement_total(c.engagement_metrics) >= filters.engagement_min]

        ranked = self.ranker.score(candidates, parsed)
        if filters.semantic and ranked:
            similarities = await self.scorer.score(parsed.text or filters.query, [c.content or "" for c in candidates])
            for item, similarity in zip(ranked, similarities):
                item.semantic_similarity = similarity
        if filters.sort == "relevance":
            ranked = order_by_score(ranked)

        if truncated and filters.engagement_min is None:
            counts = await self.store.aggregate(filters, user.user_id, timeout_message=SEARCH_TIMEOUT_MESSAGE)
        else:
            counts = FilteredCounts.from_comments([item.comment for item in ranked])
        total = counts.total
        page = ranked[filters.offset:filters.offset + filters.limit]
        page_comments = [item.comment for item in page]

        fields: Dict[str, Any] = {
            "query": filters.query,
            "search_type": filters.search_type,
            "pagination": _pagination(filters, total, len(ranked)),
            "filters": filters.echo(),
            "cross_platform_analysis": {
                "platforms_searched": filters.platforms or None,
                "platform_breakdown": facet_service.platform_breakdown(page_comments),
            },
        }
        if truncated:
            fields["pagination"]["truncated"] = True
        if filters.facets:
            fields["facets"] = facet_service.aggregate_facets(
                counts,
                self.config.date_bucket_granularity,
                filters.date_from,
                filters.date_to,
            )
        if filters.sentiment_analysis:
            fields["sentiment_analysis"] = facet_service.sentiment_analysis(
                page_comments, self.config.date_bucket_granularity
            )
        if total == 0:
            fields["message"] = EMPTY_SEARCH_MESSAGE
            fields["suggestions"] = await self._suggestions(filters, user)

        fields["performance"] = {"search_time_ms": _elapsed_ms(started)}
        logger.info(
            "Search completed",
            search_type=filters.search_type,
            query=truncate_for_log(filters.query, 32),
            candidates=len(candidates),
            truncated=truncated,
            returned=len(page),
        )
        return jsonable_encoder(format_success_response(self.serialize(page_comments, page), **fields))

    async def _suggestions(self, filters: CommentFilters, user: AuthenticatedUser) -> Optional[Dict[str, Any]]:
        try:
            vocabulary = await self.store.vocabulary_sample(user.user_id)
        except CommentServiceError as e:
            logger.warning("Suggestion vocabulary unavailable", error=e.message)
            vocabulary = []
        text = filters.parsed_query.text if filters.parsed_query else filters.query
        return safe_suggest(self.suggester, text or filters.query, vocabulary)

    # Moderation queue and single comment

    async def moderation_queue(self, filters: CommentFilters, user: AuthenticatedUser) -> Dict[str, Any]:
        """Pending and flagged comments, oldest first, for moderators"""
        if not user.is_moderator:
            raise AuthorizationError("Moderator role required")

        rows, total = await self.store.list_page(filters, None)
        queue = self.serialize(rows)
        for item, row in zip(queue, rows):
            item["priority"] = moderation_priority(row.sentiment_score, row.status)

        counts = await self.store.aggregate(replace(filters, priority=None), None, include_priority=True)
        return format_success_response(
            moderation_queue=queue,
            statistics=moderation_queue_statistics(counts),
            pagination=_pagination(filters, total),
            filters=filters.echo(),
        )

    async def get_comment(self, raw_id: str, user: AuthenticatedUser) -> Dict[str, Any]:
        try:
            comment_id = UUID(raw_id)
        except ValueError:
            raise ValidationError("Invalid comment ID format", details={"field": "comment_id"})

        comment = await self.store.get(comment_id)
        # Other users' comments are reported as missing, not forbidden
        if comment is None or (comment.user_id != user.user_id and not user.is_moderator):
            raise NotFoundError("Comment not found")
        return format_success_response(self.serialize([comment])[0])