"""
RESTful comment listing, search, moderation and write endpoints
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from schemas.requests import CreateCommentRequest, ModerationRequest, PlatformSyncRequest, UpdateCommentRequest
from schemas.responses import ModerationResponse
from services.comment_filters import RequestKind, parse_filters
from services.comment_pipeline import CommentPipeline
from services.comment_store import CommentStore
from services.comment_writer import CommentWriter
from services.moderation import ModerationStateMachine
from services.ranking import RelevanceRanker
from utils.auth import AuthenticatedUser, get_current_user
from utils.config import Config, get_config
from utils.database import get_db
from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)

router = APIRouter()


def get_store(
    db: AsyncSession = Depends(get_db),
    config: Config = Depends(get_config)
) -> CommentStore:
    return CommentStore(db, timeout_seconds=config.store_timeout_seconds)


def get_pipeline(
    request: Request,
    store: CommentStore = Depends(get_store),
    config: Config = Depends(get_config)
) -> CommentPipeline:
    """Assemble the request pipeline from process-wide components on app.state"""
    state = request.app.state
    return CommentPipeline(
        store=store,
        encryption=state.encryption,
        config=config,
        ranker=RelevanceRanker(),
        scorer=state.similarity_scorer,
        suggester=state.suggester,
        cache=state.result_cache,
    )


def get_writer(pipeline: CommentPipeline = Depends(get_pipeline)) -> CommentWriter:
    return CommentWriter(pipeline.store, pipeline.encryption, pipeline.serialize)


@router.get("")
async def list_comments(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    pipeline: CommentPipeline = Depends(get_pipeline),
    config: Config = Depends(get_config)
):
    """List comments with filtering and pagination"""
    filters = parse_filters(RequestKind.LIST, request.query_params, config)
    return await pipeline.list_comments(filters, current_user)


@router.post("", status_code=201)
async def create_comment(
    body: CreateCommentRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    writer: CommentWriter = Depends(get_writer)
):
    """Create a comment; it starts in the pending state"""
    return await writer.create(body, current_user)


@router.get("/search")
async def search_comments(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    pipeline: CommentPipeline = Depends(get_pipeline),
    config: Config = Depends(get_config)
):
    """Full-text search with advanced syntax, facets and semantic mode"""
    filters = parse_filters(RequestKind.SEARCH, request.query_params, config)
    return await pipeline.search(filters, current_user)


@router.get("/moderate")
async def moderation_queue(
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    pipeline: CommentPipeline = Depends(get_pipeline),
    config: Config = Depends(get_config)
):
    """Pending and flagged comments awaiting a moderator"""
    filters = parse_filters(RequestKind.QUEUE, request.query_params, config)
    return await pipeline.moderation_queue(filters, current_user)


@router.post("/moderate", response_model=ModerationResponse)
async def moderate_comments(
    body: ModerationRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: CommentStore = Depends(get_store)
):
    """Apply one moderation action to a batch of comments"""
    outcome = await ModerationStateMachine(store).moderate(
        body.comment_ids,
        body.action,
        current_user,
        reason=body.reason,
    )
    return outcome.to_response()


@router.get("/platforms/{platform}")
async def list_platform_comments(
    platform: str,
    request: Request,
    current_user: AuthenticatedUser = Depends(get_current_user),
    pipeline: CommentPipeline = Depends(get_pipeline),
    config: Config = Depends(get_config)
):
    """Comments for one platform plus per-platform statistics"""
    filters = parse_filters(RequestKind.PLATFORM, request.query_params, config, path_platform=platform)
    return await pipeline.list_comments(filters, current_user)


@router.post("/platforms/{platform}")
async def sync_platform_comments(
    platform: str,
    body: PlatformSyncRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    writer: CommentWriter = Depends(get_writer)
):
    """Ingest a batch of comments collected from one platform"""
    return await writer.sync(platform, body.comments, current_user)


@router.get("/{comment_id}")
async def get_comment(
    comment_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    pipeline: CommentPipeline = Depends(get_pipeline)
):
    """Fetch a single comment"""
    return await pipeline.get_comment(comment_id, current_user)


@router.put("/{comment_id}")
async def update_comment(
    comment_id: str,
    body: UpdateCommentRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    writer: CommentWriter = Depends(get_writer)
):
    """Partially update a comment owned by the caller"""
    return await writer.update(comment_id, body, current_user)


@router.delete("/{comment_id}")
async def delete_comment(
    comment_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    writer: CommentWriter = Depends(get_writer)
):
    """Soft delete a comment owned by the caller"""
    return await writer.delete(comment_id, current_user)
