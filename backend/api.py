"""
FastAPI backend for the Activity Tree.

Exposes the aggregation engine over HTTP: the full or focused activity tree
(JSON or text report) and the health of a single item's full history.
Every request builds its own RunContext; nothing is cached across requests.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from activity_tree.core.aggregator import ActivityAggregator, RunContext
from activity_tree.core.config import load_config
from activity_tree.core.errors import ActivityFetchError, ConfigError, EventParseError
from activity_tree.core.fetcher import ActivityFilters
from activity_tree.core.projector import FocusSelector
from activity_tree.core.renderer import render_text

logger = logging.getLogger(__name__)

config = load_config()

app = FastAPI(
    title="Activity Tree API",
    description="Hierarchical activity log and item health analytics for Todoist",
    version="1.0.0",
)

# Configure CORS - allow all localhost origins in development
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1):\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_context() -> RunContext:
    """Fresh per-request run context."""
    try:
        return RunContext.create(config)
    except ConfigError as e:
        logger.error(f"Cannot create run context: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


def _fetch_failed(e: ActivityFetchError) -> HTTPException:
    logger.error(f"Activity fetch failed: {e}", exc_info=True)
    return HTTPException(
        status_code=502,
        detail={"error": "activity_fetch_failed", "status": e.status, "reason": e.reason},
    )


@app.get("/")  # type: ignore[misc]
async def root() -> Dict[str, Any]:
    """
    Root endpoint with API information.

    Returns
    -------
    dict
        API information and status
    """
    return {
        "name": "Activity Tree API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "/api/activity": "Get the aggregated activity tree",
            "/api/items/{item_id}/history": "Get one item's full history and health",
            "/health": "Health check",
        },
    }


@app.get("/health")  # type: ignore[misc]
async def health() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/api/activity", response_model=None)  # type: ignore[misc]
def get_activity(
    object_type: Optional[str] = Query(None, description="project, section, item/task or note/comment"),
    object_id: Optional[str] = Query(None, description="Only events about this object"),
    event_type: Optional[str] = Query(None, description="added, updated, completed, ..."),
    parent_project_id: Optional[str] = Query(None, description="Only events in this project"),
    parent_id: Optional[str] = Query(None, description="Only events under this parent item"),
    since: Optional[str] = Query(None, description="Start date (YYYY-MM-DD or ISO 8601)"),
    until: Optional[str] = Query(None, description="End date (YYYY-MM-DD or ISO 8601)"),
    limit: Optional[int] = Query(None, ge=0, description="Maximum number of events"),
    include_deleted: bool = Query(False, description="Include deleted objects"),
    project_id: Optional[str] = Query(None, description="Focus on one project"),
    section_id: Optional[str] = Query(None, description="Focus on one section"),
    task_id: Optional[str] = Query(None, description="Focus on one task"),
    include_children: bool = Query(False, description="Keep descendants of the focus"),
    format: Literal["json", "text"] = Query("json", description="Response format"),
    context: RunContext = Depends(get_context),
) -> Union[Dict[str, Any], PlainTextResponse]:
    """
    Get the aggregated activity tree.

    Parameters
    ----------
    object_type, object_id, event_type, parent_project_id, parent_id : Optional[str]
        Activity log filters
    since, until : Optional[str]
        Date range
    limit : Optional[int]
        Overall event cap
    include_deleted : bool
        Include events about deleted objects
    project_id, section_id, task_id : Optional[str]
        Focus selector (at most one)
    include_children : bool
        Keep the focus node's descendants
    format : str
        'json' (default) or 'text'

    Returns
    -------
    dict or text
        Serialized tree, or the indented text report
    """
    try:
        focus = FocusSelector(project_id=project_id, section_id=section_id, task_id=task_id)
        filters = ActivityFilters(
            object_type=object_type,
            object_id=object_id,
            event_type=event_type,
            parent_project_id=parent_project_id,
            parent_id=parent_id,
            since=since,
            until=until,
            limit=limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    aggregator = ActivityAggregator(context)
    try:
        tree = aggregator.create_tree(
            filters,
            focus=focus,
            include_children=include_children,
            include_deleted=include_deleted,
        )
    except ActivityFetchError as e:
        raise _fetch_failed(e)
    except EventParseError as e:
        logger.error(f"Malformed activity record: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Malformed activity record: {e}")

    if format == "text":
        try:
            paths = context.project_paths.paths()
        except ActivityFetchError as e:
            logger.warning(f"Project names unavailable, rendering ids only: {e}")
            paths = {}
        return PlainTextResponse(render_text(tree, paths))

    return tree.to_dict()


@app.get("/api/items/{item_id}/history")  # type: ignore[misc]
def get_item_history(
    item_id: str,
    context: RunContext = Depends(get_context),
) -> Dict[str, Any]:
    """
    Get one item's full event history and its health indicator.

    The history is best-effort: ``complete`` is false when the retry budget
    ran out before every page was read.
    """
    aggregator = ActivityAggregator(context)
    try:
        history, indicator = aggregator.item_history(item_id)
    except EventParseError as e:
        logger.error(f"Malformed activity record: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=f"Malformed activity record: {e}")

    return {
        "item_id": history.item_id,
        "complete": history.complete,
        "attempts": history.attempts,
        "item_events": [e.to_dict() for e in history.item_events],
        "comments": [e.to_dict() for e in history.comments],
        "health": indicator.to_dict() if indicator else None,
        "fetched_at": datetime.now(timezone.utc).isoformat(),
    }


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    logger.info(f"Starting Activity Tree API on http://0.0.0.0:{config.port}")
    uvicorn.run(app, host="0.0.0.0", port=config.port, log_level="info")  # nosec B104
