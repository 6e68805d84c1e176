"""
Owner-scoped comment writes: create, update, soft delete and platform sync
"""

from datetime import timedelta
from typing import Any, Callable, Dict, List, Sequence
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError

from models.database import PLATFORM_VALUES, Comment, utcnow
from schemas.requests import CreateCommentRequest, SyncedComment, UpdateCommentRequest
from services.comment_store import CommentStore
from services.field_encryption import FieldEncryptionAdapter
from services.moderation import (
    CONCURRENT_MODIFICATION,
    FORBIDDEN,
    INVALID_TRANSITION,
    NOT_FOUND,
    STATUS_ACTIONS,
    ModerationStateMachine,
)
from utils.auth import AuthenticatedUser
from utils.exceptions import (
    AuthorizationError,
    ConflictError,
    DatabaseError,
    InvalidPlatformError,
    NotFoundError,
    ValidationError,
)
from utils.monitoring import track_comment_write
from utils.response_envelope import format_success_response
from utils.structured_logging import get_structured_logger, log_security_event

logger = get_structured_logger(__name__)

DUPLICATE_WINDOW = timedelta(hours=24)
DUPLICATE_MESSAGE = "Duplicate comment detected. Please wait before posting similar content."
NOT_FOUND_OR_DENIED = "Comment not found or access denied"


def parse_comment_id(raw_id: str) -> UUID:
    try:
        return UUID(raw_id)
    except ValueError:
        raise ValidationError("Invalid comment ID format", details={"field": "comment_id"})


class CommentWriter:
    """
    Write operations on a user's comments

    Status changes requested through an update are applied by the moderation
    state machine, so the transition table holds for every write path.

    Args:
        store: Request-scoped comment store
        encryption: Field encryption adapter
        serialize: Row to masked response dict conversion
    """

    def __init__(
        self,
        store: CommentStore,
        encryption: FieldEncryptionAdapter,
        serialize: Callable[[Sequence[Comment]], List[Dict[str, Any]]],
    ):
        self.store = store
        self.encryption = encryption
        self.serialize = serialize

    async def _visible(self, comment_id: UUID, user: AuthenticatedUser, operation: str) -> Comment:
        comment = await self.store.get(comment_id)
        if comment is None:
            raise NotFoundError(NOT_FOUND_OR_DENIED)
        if comment.user_id != user.user_id and not user.is_moderator:
            log_security_event(
                "UNAUTHORIZED_ACCESS",
                severity="HIGH",
                endpoint=operation,
                user_id=user.user_id,
                comment_id=str(comment_id),
            )
            raise NotFoundError(NOT_FOUND_OR_DENIED)
        return comment

    async def create(self, body: CreateCommentRequest, user: AuthenticatedUser) -> Dict[str, Any]:
        """
        Store a new pending comment for the caller

        Raises:
            ConflictError: Same content from the same user within 24 hours, or
                the platform comment is already stored
        """
        content_hash = self.encryption.hash_content(body.content, user.user_id)
        if await self.store.find_recent_duplicate(user.user_id, content_hash, utcnow() - DUPLICATE_WINDOW):
            track_comment_write("create", "duplicate")
            raise ConflictError(DUPLICATE_MESSAGE)

        try:
            comment, created = await self.store.ingest(
                self.encryption,
                user.user_id,
                body.platform.value,
                body.platform_comment_id,
                body.content,
                platform_post_id=body.platform_post_id,
                platform_user_id=body.platform_user_id,
                author_username=body.author_username,
                sentiment_score=body.sentiment_score,
                engagement_metrics=body.engagement_metrics,
                moderation_flags=body.moderation_flags,
                created_at_platform=body.created_at_platform,
            )
        except SQLAlchemyError as e:
            logger.error("Failed to create comment", user_id=user.user_id, error=str(e))
            raise DatabaseError("Failed to create comment")

        if not created:
            track_comment_write("create", "duplicate")
            raise ConflictError("Comment already exists", details={"id": str(comment.id)})

        track_comment_write("create", "created")
        logger.info("Comment created successfully", comment_id=str(comment.id), platform=comment.platform)
        return jsonable_encoder(format_success_response(
            self.serialize([comment])[0],
            message="Comment created successfully",
        ))

    async def update(self, raw_id: str, body: UpdateCommentRequest, user: AuthenticatedUser) -> Dict[str, Any]:
        """
        Apply a partial update by the owner or a moderator

        The status change, when present, runs first; field changes are only
        written once it has succeeded.
        """
        comment_id = parse_comment_id(raw_id)
        comment = await self._visible(comment_id, user, "update")

        changes = body.model_dump(mode="json", exclude_unset=True)
        target = changes.pop("status", None)
        if target is not None and target != comment.status:
            await self._change_status(comment_id, target, user)

        if changes:
            try:
                updated = await self.store.update_fields(comment_id, changes)
            except SQLAlchemyError as e:
                logger.error("Failed to update comment", comment_id=raw_id, error=str(e))
                raise DatabaseError("Failed to update comment")
            if not updated:
                raise NotFoundError(NOT_FOUND_OR_DENIED)

        refreshed = await self.store.get(comment_id)
        if refreshed is None:
            raise NotFoundError(NOT_FOUND_OR_DENIED)
        track_comment_write("update", "updated")
        logger.info(
            "Comment updated successfully",
            comment_id=raw_id,
            actor=user.user_id,
            changes=sorted(changes) + (["status"] if target else []),
        )
        return jsonable_encoder(format_success_response(
            self.serialize([refreshed])[0],
            message="Comment updated successfully",
        ))

    async def _change_status(self, comment_id: UUID, target: str, user: AuthenticatedUser) -> None:
        outcome = await ModerationStateMachine(self.store).moderate([str(comment_id)], STATUS_ACTIONS[target], user)
        if not outcome.failures:
            return
        reason = outcome.failures[0]["reason"]
        if reason == NOT_FOUND:
            raise NotFoundError(NOT_FOUND_OR_DENIED)
        if reason == FORBIDDEN:
            raise AuthorizationError("Moderator role required to reopen a decided comment")
        if reason == INVALID_TRANSITION:
            raise ValidationError("Invalid status transition", details={"field": "status", "target": target})
        if reason == CONCURRENT_MODIFICATION:
            raise ConflictError("Comment was modified concurrently, retry the update")
        raise DatabaseError("Failed to update comment")

    async def delete(self, raw_id: str, user: AuthenticatedUser) -> Dict[str, Any]:
        """Soft delete; the row stays for audit but disappears from every read"""
        comment_id = parse_comment_id(raw_id)
        await self._visible(comment_id, user, "delete")

        try:
            deleted_at = await self.store.soft_delete(comment_id)
        except SQLAlchemyError as e:
            logger.error("Failed to delete comment", comment_id=raw_id, error=str(e))
            raise DatabaseError("Failed to delete comment")
        if deleted_at is None:
            raise NotFoundError(NOT_FOUND_OR_DENIED)

        track_comment_write("delete", "deleted")
        logger.info("Comment deleted successfully", comment_id=raw_id, actor=user.user_id)
        return jsonable_encoder(format_success_response(
            {"id": str(comment_id), "status": "deleted", "deleted_at": deleted_at},
            message="Comment deleted successfully",
        ))

    async def sync(
        self,
        platform: str,
        comments: Sequence[SyncedComment],
        user: AuthenticatedUser
    ) -> Dict[str, Any]:
        """
        Ingest a batch collected from one platform

        Each comment is ingested on its own, so re-syncing the same batch only
        reports duplicates and one bad row never drops its siblings.
        """
        platform = (platform or "").strip().lower()
        if platform not in PLATFORM_VALUES:
            raise InvalidPlatformError(platform, PLATFORM_VALUES)

        result = {"processed": 0, "created": 0, "duplicates": 0, "failed": 0}
        for item in comments:
            try:
                _, created = await self.store.ingest(
                    self.encryption,
                    user.user_id,
                    platform,
                    item.platform_comment_id,
                    item.content,
                    platform_post_id=item.platform_post_id,
                    platform_user_id=item.platform_user_id,
                    author_username=item.author_username,
                    sentiment_score=item.sentiment_score,
                    engagement_metrics=item.engagement_metrics,
                    moderation_flags=item.moderation_flags,
                    created_at_platform=item.created_at_platform,
                )
            except SQLAlchemyError as e:
                logger.error("Failed to ingest synced comment", platform=platform, error=str(e))
                result["failed"] += 1
                continue
            result["processed"] += 1
            result["created" if created else "duplicates"] += 1

        for outcome in ("created", "duplicates", "failed"):
            track_comment_write("sync", outcome, result[outcome])
        logger.info("Platform sync completed", platform=platform, user_id=user.user_id, **result)

        if result["failed"] and not result["processed"]:
            raise DatabaseError("Failed to sync comments", details={"sync_result": result})
        return format_success_response(
            platform=platform,
            sync_result=result,
            message=f"Successfully synced {result['processed']} comments from {platform}",
        )
