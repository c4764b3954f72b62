from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from know.enrichment import EnrichmentRuntime, QueueClosedError, requeue_pending

from api.dependencies import get_runtime

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/retag-missing")
def retag_missing(runtime: EnrichmentRuntime = Depends(get_runtime)):
    try:
        queued = requeue_pending(runtime.repository, runtime.queue, tag_cache=runtime.tag_cache)
    except QueueClosedError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return {"queued": len(queued), "article_ids": queued}


@router.post("/clear-all")
def clear_all(runtime: EnrichmentRuntime = Depends(get_runtime)):
    removed = runtime.service.clear_all()
    return {"deleted": removed}
