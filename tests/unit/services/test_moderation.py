"""
Unit tests for the moderation state machine - bulk transitions with per-id accounting
"""

from uuid import uuid4

import pytest
from unittest.mock import AsyncMock
from sqlalchemy.exc import OperationalError

from services.moderation import (
    CONCURRENT_MODIFICATION,
    FORBIDDEN,
    INVALID_TRANSITION,
    ModerationAction,
    ModerationStateMachine,
    transition_error,
)
from utils.auth import AuthenticatedUser

OWNER = AuthenticatedUser(user_id="user-1")
MODERATOR = AuthenticatedUser(user_id="mod-1", role="moderator")


class TestTransitionTable:

    @pytest.mark.parametrize("target", ["approved", "rejected", "flagged", "spam"])
    def test_pending_moves_to_any_decision(self, target):
        assert transition_error("pending", target, is_moderator=False) is None

    def test_reopen_is_moderator_only(self):
        assert transition_error("approved", "pending", is_moderator=False) == FORBIDDEN
        assert transition_error("approved", "pending", is_moderator=True) is None

    def test_decision_to_decision_is_invalid(self):
        assert transition_error("approved", "rejected", is_moderator=True) == INVALID_TRANSITION

    def test_unknown_status_is_invalid(self):
        assert transition_error("archived", "approved", is_moderator=True) == INVALID_TRANSITION


class TestModerationStateMachine:

    @pytest.mark.asyncio
    async def test_counts_only_real_changes(self, mock_store, make_comment):
        pending = make_comment(status="pending")
        approved = make_comment(status="approved")
        mock_store.get_many.return_value = {pending.id: pending, approved.id: approved}

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(pending.id), str(approved.id)], ModerationAction.APPROVE, OWNER
        )

        response = outcome.to_response()
        assert response["success"] is True
        assert response["summary"]["successfully_updated"] == 1
        assert response["summary"]["unchanged"] == 1
        mock_store.transition.assert_awaited_once_with(pending.id, "pending", "approved", "user-1", None)

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_collapsed(self, mock_store, make_comment):
        comment = make_comment()
        mock_store.get_many.return_value = {comment.id: comment}

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(comment.id), str(comment.id)], ModerationAction.FLAG, OWNER
        )

        assert outcome.to_response()["summary"]["total_requested"] == 1
        assert mock_store.transition.await_count == 1

    @pytest.mark.asyncio
    async def test_foreign_comment_is_forbidden_for_owner(self, mock_store, make_comment):
        foreign = make_comment(user_id="user-2")
        mock_store.get_many.return_value = {foreign.id: foreign}

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(foreign.id)], ModerationAction.REJECT, OWNER
        )

        assert outcome.failures == [{"id": str(foreign.id), "reason": FORBIDDEN}]
        mock_store.transition.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_moderator_may_act_on_any_comment(self, mock_store, make_comment):
        foreign = make_comment(user_id="user-2")
        mock_store.get_many.return_value = {foreign.id: foreign}

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(foreign.id)], ModerationAction.MARK_SPAM, MODERATOR, reason="bot"
        )

        assert outcome.successfully_updated == 1
        mock_store.transition.assert_awaited_once_with(foreign.id, "pending", "spam", "mod-1", "bot")

    @pytest.mark.asyncio
    async def test_lost_race_to_same_target_is_unchanged(self, mock_store, make_comment):
        comment = make_comment()
        mock_store.get_many.return_value = {comment.id: comment}
        mock_store.transition.return_value = False
        mock_store.current_status.return_value = "approved"

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(comment.id)], ModerationAction.APPROVE, OWNER
        )

        assert outcome.results == {str(comment.id): "unchanged"}
        assert outcome.failures == []

    @pytest.mark.asyncio
    async def test_lost_race_to_other_target_fails(self, mock_store, make_comment):
        comment = make_comment()
        mock_store.get_many.return_value = {comment.id: comment}
        mock_store.transition.return_value = False
        mock_store.current_status.return_value = "rejected"

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(comment.id)], ModerationAction.APPROVE, OWNER
        )

        assert outcome.failures == [{"id": str(comment.id), "reason": CONCURRENT_MODIFICATION}]

    @pytest.mark.asyncio
    async def test_store_error_does_not_abort_siblings(self, mock_store, make_comment):
        first, second = make_comment(), make_comment()
        mock_store.get_many.return_value = {first.id: first, second.id: second}
        mock_store.transition = AsyncMock(side_effect=[OperationalError("UPDATE", {}, Exception("locked")), True])

        outcome = await ModerationStateMachine(mock_store).moderate(
            [str(first.id), str(second.id)], ModerationAction.APPROVE, OWNER
        )

        assert outcome.results == {str(first.id): "failed", str(second.id): "updated"}
        assert outcome.failures[0]["reason"] == "store_error"

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_ids(self, mock_store):
        missing = str(uuid4())

        outcome = await ModerationStateMachine(mock_store).moderate(
            [missing, "12345"], ModerationAction.APPROVE, OWNER
        )

        assert {f["reason"] for f in outcome.failures} == {"not_found", "invalid_id"}
        assert outcome.to_response()["success"] is False
