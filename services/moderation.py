"""
Moderation state machine for bulk comment status transitions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from models.database import CommentStatus
from services.comment_store import CommentStore
from utils.auth import AuthenticatedUser
from utils.exceptions import CommentServiceError
from utils.monitoring import track_moderation_outcome
from utils.structured_logging import get_structured_logger, log_security_event

logger = get_structured_logger(__name__)


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    FLAG = "flag"
    MARK_SPAM = "mark_spam"
    REOPEN = "reopen"


ACTION_TARGETS: Dict[ModerationAction, CommentStatus] = {
    ModerationAction.APPROVE: CommentStatus.APPROVED,
    ModerationAction.REJECT: CommentStatus.REJECTED,
    ModerationAction.FLAG: CommentStatus.FLAGGED,
    ModerationAction.MARK_SPAM: CommentStatus.SPAM,
    ModerationAction.REOPEN: CommentStatus.PENDING,
}

# Action that moves a comment into each status
STATUS_ACTIONS: Dict[str, ModerationAction] = {target.value: action for action, target in ACTION_TARGETS.items()}

TERMINAL_STATES = {CommentStatus.APPROVED, CommentStatus.REJECTED, CommentStatus.FLAGGED, CommentStatus.SPAM}

# Per-id failure reasons
NOT_FOUND = "not_found"
INVALID_ID = "invalid_id"
FORBIDDEN = "forbidden"
INVALID_TRANSITION = "invalid_transition"
CONCURRENT_MODIFICATION = "concurrent_modification"
STORE_ERROR = "store_error"

UPDATED = "updated"
UNCHANGED = "unchanged"
FAILED = "failed"


def transition_error(current: str, target: str, is_moderator: bool) -> Optional[str]:
    """
    Check one status change against the transition table

    pending moves to any decided state; a decided state only moves back to
    pending, and only for moderators.

    Returns:
        None when allowed, otherwise the failure reason
    """
    try:
        source, destination = CommentStatus(current), CommentStatus(target)
    except ValueError:
        return INVALID_TRANSITION
    if source == CommentStatus.PENDING and destination in TERMINAL_STATES:
        return None
    if source in TERMINAL_STATES and destination == CommentStatus.PENDING:
        return None if is_moderator else FORBIDDEN
    return INVALID_TRANSITION


@dataclass
class ModerationOutcome:
    action: ModerationAction
    reason: Optional[str]
    results: Dict[str, str] = field(default_factory=dict)
    failures: List[Dict[str, str]] = field(default_factory=list)

    def record(self, comment_id: str, outcome: str, failure: Optional[str] = None) -> None:
        self.results[comment_id] = outcome
        if failure:
            self.failures.append({"id": comment_id, "reason": failure})
        track_moderation_outcome(self.action.value, failure or outcome)

    @property
    def successfully_updated(self) -> int:
        return sum(1 for outcome in self.results.values() if outcome == UPDATED)

    @property
    def unchanged(self) -> int:
        return sum(1 for outcome in self.results.values() if outcome == UNCHANGED)

    def to_response(self) -> Dict[str, object]:
        return {
            "success": not self.failures,
            "summary": {
                "total_requested": len(self.results),
                "successfully_updated": self.successfully_updated,
                "unchanged": self.unchanged,
                "failed": len(self.failures),
                "action": self.action.value,
                "reason": self.reason,
            },
            "failures": self.failures,
            "results": self.results,
        }


class ModerationStateMachine:
    """
    Apply one action to many comments with per-id accounting

    Every id is an isolated unit of work: its own ownership check, transition
    check and compare-and-set write. One id failing never affects another.
    """

    def __init__(self, store: CommentStore):
        self.store = store

    async def moderate(
        self,
        comment_ids: List[str],
        action: ModerationAction,
        actor: AuthenticatedUser,
        reason: Optional[str] = None
    ) -> ModerationOutcome:
        """
        Moderate a batch

        Args:
            comment_ids: Raw ids from the request, duplicates collapsed
            action: Requested action
            actor: Authenticated caller
            reason: Optional note stored with each change

        Returns:
            Outcome with per-id results and failures
        """
        outcome = ModerationOutcome(action=action, reason=reason)
        target = ACTION_TARGETS[action].value

        parsed: Dict[str, UUID] = {}
        for raw_id in dict.fromkeys(comment_ids):
            try:
                parsed[raw_id] = UUID(str(raw_id))
            except ValueError:
                outcome.record(raw_id, FAILED, INVALID_ID)

        existing = await self.store.get_many(parsed.values())
        foreign_ids: List[str] = []

        for raw_id, comment_id in parsed.items():
            comment = existing.get(comment_id)
            if comment is None:
                outcome.record(raw_id, FAILED, NOT_FOUND)
                continue
            if comment.user_id != actor.user_id and not actor.is_moderator:
                foreign_ids.append(raw_id)
                outcome.record(raw_id, FAILED, FORBIDDEN)
                continue
            await self._apply(outcome, raw_id, comment_id, comment.status, target, actor, reason)

        if foreign_ids:
            log_security_event(
                "UNAUTHORIZED_ACCESS",
                severity="HIGH",
                endpoint="moderate",
                user_id=actor.user_id,
                reason="moderating comments owned by other users",
                comment_ids=foreign_ids[:20],
            )

        logger.info(
            "Bulk moderation completed",
            action=action.value,
            actor=actor.user_id,
            requested=len(outcome.results),
            updated=outcome.successfully_updated,
            unchanged=outcome.unchanged,
            failed=len(outcome.failures),
        )
        return outcome

    async def _apply(
        self,
        outcome: ModerationOutcome,
        raw_id: str,
        comment_id: UUID,
        current: str,
        target: str,
        actor: AuthenticatedUser,
        reason: Optional[str]
    ) -> None:
        if current == target:
            outcome.record(raw_id, UNCHANGED)
            return

        error = transition_error(current, target, actor.is_moderator)
        if error:
            outcome.record(raw_id, FAILED, error)
            return

        try:
            changed = await self.store.transition(comment_id, current, target, actor.user_id, reason)
            if changed:
                outcome.record(raw_id, UPDATED)
                return
            # Someone else moved the row between our read and write
            latest = await self.store.current_status(comment_id)
        except (SQLAlchemyError, CommentServiceError) as e:
            logger.error("Moderation write failed", comment_id=raw_id, error=str(e))
            outcome.record(raw_id, FAILED, STORE_ERROR)
            return

        if latest == target:
            outcome.record(raw_id, UNCHANGED)
        elif latest is None:
            outcome.record(raw_id, FAILED, NOT_FOUND)
        else:
            outcome.record(raw_id, FAILED, CONCURRENT_MODIFICATION)
