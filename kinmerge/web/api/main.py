"""FastAPI application for reviewing and merging duplicate persons."""

import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...config import DedupeConfig
from ...core.exceptions import (
    ConflictError,
    IntegrityError,
    KinMergeError,
    NotFoundError,
    ScopeError,
    ValidationError,
)
from ...core.models import CandidateStatus, DuplicateCandidate
from ...service import DedupeService

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="KinMerge API",
    description="Duplicate person detection and merging for family trees",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    ScopeError: 409,
    ConflictError: 409,
    IntegrityError: 500,
}

_service: Optional[DedupeService] = None


def get_service() -> DedupeService:
    """Service bound to the database named by KINMERGE_DATABASE."""
    global _service
    if _service is None:
        config = DedupeConfig.from_env()
        _service = DedupeService.open(config.database_path, config)
        logger.info(f"Opened database {config.database_path}")
    return _service


@app.exception_handler(KinMergeError)
async def kinmerge_error_handler(request: Request, exc: KinMergeError):
    status_code = ERROR_STATUS.get(type(exc), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# Pydantic models for API
class ScanRequest(BaseModel):
    force_refresh: bool = False


class DismissRequest(BaseModel):
    actor_id: Optional[str] = None


class MergeRequestBody(BaseModel):
    actor_id: str
    candidate_id: Optional[str] = None
    winner_id: Optional[str] = None
    loser_id: Optional[str] = None
    field_resolutions: Dict[str, str] = {}
    reason: Optional[str] = None


class PreviewRequest(BaseModel):
    winner_id: str
    loser_id: str


class UndoRequest(BaseModel):
    actor_id: str


def candidate_payload(candidate: DuplicateCandidate, service: DedupeService) -> dict:
    data = candidate.to_dict()
    data['band'] = service.config.band(candidate.confidence_score)
    return data


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/families/{family_id}/scan")
def scan_family(family_id: str, request: ScanRequest,
                service: DedupeService = Depends(get_service)):
    """Scan a family and return its pending candidates."""
    report = service.scan_report(family_id, request.force_refresh)
    return {
        "family_id": family_id,
        "incremental": report.incremental,
        "stats": vars(report.stats),
        "candidates": [candidate_payload(c, service) for c in report.candidates],
    }


@app.get("/api/families/{family_id}/candidates")
def list_candidates(family_id: str, status: Optional[str] = "pending",
                    service: DedupeService = Depends(get_service)):
    """List candidates of a family; status=all lists every state."""
    if status == "all":
        wanted = None
    else:
        try:
            wanted = CandidateStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown candidate status: {status}") from None
    return [candidate_payload(c, service) for c in service.list_candidates(family_id, wanted)]


@app.get("/api/candidates/{candidate_id}")
def get_candidate(candidate_id: str, service: DedupeService = Depends(get_service)):
    return candidate_payload(service.get_candidate(candidate_id), service)


@app.post("/api/candidates/{candidate_id}/dismiss")
def dismiss_candidate(candidate_id: str, request: DismissRequest,
                      service: DedupeService = Depends(get_service)):
    """Dismiss a pending candidate."""
    return candidate_payload(service.dismiss(candidate_id, request.actor_id), service)


@app.post("/api/merges")
def merge_persons(request: MergeRequestBody, service: DedupeService = Depends(get_service)):
    """Merge a candidate or an explicit winner/loser pair."""
    result = service.merge(
        actor_id=request.actor_id,
        candidate_id=request.candidate_id,
        winner_id=request.winner_id,
        loser_id=request.loser_id,
        field_resolutions=request.field_resolutions,
        reason=request.reason,
    )
    return result.to_dict()


@app.post("/api/merges/preview")
def preview_merge(request: PreviewRequest, service: DedupeService = Depends(get_service)):
    """Show suggested field resolutions and affected references without merging."""
    return service.preview(request.winner_id, request.loser_id).to_dict()


@app.get("/api/merges/{merge_id}")
def get_merge(merge_id: str, service: DedupeService = Depends(get_service)):
    return service.get_history(merge_id).to_dict()


@app.post("/api/merges/{merge_id}/undo")
def undo_merge(merge_id: str, request: UndoRequest,
               service: DedupeService = Depends(get_service)):
    """Undo a merge within the undo window."""
    return service.undo(merge_id, request.actor_id).to_dict()


@app.get("/api/families/{family_id}/history")
def list_history(family_id: str, service: DedupeService = Depends(get_service)):
    """Merge history of a family, newest first."""
    return [entry.to_dict() for entry in service.list_history(family_id)]


@app.get("/api/persons/{person_id}/resolve")
def resolve_person(person_id: str, service: DedupeService = Depends(get_service)):
    """Resolve a possibly merged person id to the live record."""
    resolved = service.resolve_person(person_id)
    return {"person_id": person_id, "resolved_id": resolved, "redirected": resolved != person_id}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
