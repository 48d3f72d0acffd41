"""REST API router."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from holdgate import __version__
from holdgate.api.deps import get_actor, get_engine, http_error, verify_api_key
from holdgate.api.schemas import (
    ActorListResponse,
    AssignFitterRequest,
    ClaimListResponse,
    ConfirmClaimRequest,
    CreateClaimRequest,
    CreateClaimResponse,
    HealthResponse,
    InstallationProofRequest,
    MetricsResponse,
    NotificationListResponse,
    NotificationSchema,
    StageUpdateRequest,
    UnitResponse,
)
from holdgate.db.repositories import NotificationRepository
from holdgate.engine import HoldGateError, ReservationEngine
from holdgate.events import events
from holdgate.models import Actor, Claim, ClaimStatus, ProofArtifact, Role
from holdgate.observability.metrics import metrics

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


# ============================================================================
# Health & Metrics
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """In-process metrics snapshot."""
    return MetricsResponse(metrics=metrics.snapshot())


# ============================================================================
# Claims
# ============================================================================


@router.post("/claims", response_model=CreateClaimResponse, status_code=201)
async def create_claim(
    request: CreateClaimRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Claim a unit and join its queue."""
    try:
        receipt = await engine.create_claim(
            actor,
            unit_id=request.unit_id,
            date_from=request.date_from,
            client=request.client,
            duration_months=request.duration_months,
            date_to=request.date_to,
            note=request.note,
        )
    except HoldGateError as e:
        raise http_error(e)

    return CreateClaimResponse(**receipt.model_dump())


@router.get("/claims/mine", response_model=ClaimListResponse)
async def list_my_claims(
    status: Optional[ClaimStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """List the caller's own claims by queue position."""
    claims = await engine.list_my_claims(
        actor, statuses=[status] if status else None, limit=limit
    )
    return ClaimListResponse(claims=claims)


@router.get("/claims/recent", response_model=ClaimListResponse)
async def list_recent_claims(
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    unit_id: Optional[UUID] = Query(None),
    agent_id: Optional[UUID] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """List recent claims across units (management only)."""
    try:
        claims = await engine.list_recent_claims(
            actor,
            created_from=created_from,
            created_to=created_to,
            unit_id=unit_id,
            agent_id=agent_id,
            limit=limit,
        )
    except HoldGateError as e:
        raise http_error(e)
    return ClaimListResponse(claims=claims)


@router.get("/claims/{claim_id}", response_model=Claim)
async def get_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Get a claim by ID."""
    try:
        return await engine.get_claim(actor, claim_id)
    except HoldGateError as e:
        raise http_error(e)


@router.post("/claims/{claim_id}/cancel", response_model=Claim)
async def cancel_claim(
    claim_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Cancel an active claim."""
    try:
        return await engine.cancel_claim(actor, claim_id)
    except HoldGateError as e:
        raise http_error(e)


@router.post("/claims/{claim_id}/confirm", response_model=Claim)
async def confirm_claim(
    claim_id: UUID,
    request: ConfirmClaimRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Confirm a claim, committing the unit."""
    try:
        return await engine.confirm_claim(actor, claim_id, designer_hint=request.designer_id)
    except HoldGateError as e:
        raise http_error(e)


# ============================================================================
# Workflow
# ============================================================================


@router.put("/claims/{claim_id}/design-status", response_model=Claim)
async def update_design_status(
    claim_id: UUID,
    request: StageUpdateRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Advance the design stage."""
    try:
        return await engine.update_design_status(actor, claim_id, request.status)
    except HoldGateError as e:
        raise http_error(e)


@router.post("/claims/{claim_id}/assign-fitter", response_model=Claim)
async def assign_fitter(
    claim_id: UUID,
    request: AssignFitterRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Bind a fitter to a claim whose design is complete."""
    try:
        return await engine.assign_fitter(actor, claim_id, fitter_hint=request.fitter_id)
    except HoldGateError as e:
        raise http_error(e)


@router.put("/claims/{claim_id}/fitter-status", response_model=Claim)
async def update_fitter_status(
    claim_id: UUID,
    request: StageUpdateRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Advance the installation stage."""
    try:
        return await engine.update_fitter_status(actor, claim_id, request.status)
    except HoldGateError as e:
        raise http_error(e)


@router.post("/claims/{claim_id}/installation-proof", response_model=Claim)
async def submit_installation_proof(
    claim_id: UUID,
    request: InstallationProofRequest,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Attach proof artifacts and complete the installation."""
    artifacts = [ProofArtifact(filename=f.filename, url=f.url) for f in request.files]
    try:
        return await engine.complete_installation_with_proof(actor, claim_id, artifacts)
    except HoldGateError as e:
        raise http_error(e)


@router.get("/assignments", response_model=ClaimListResponse)
async def list_stage_assignments(
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Claims whose design or installation the caller owns."""
    try:
        claims = await engine.list_stage_assignments(actor)
    except HoldGateError as e:
        raise http_error(e)
    return ClaimListResponse(claims=claims)


@router.get("/designers", response_model=ActorListResponse)
async def list_designers(
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Active designers available for assignment."""
    try:
        actors = await engine.list_eligible(actor, Role.DESIGNER)
    except HoldGateError as e:
        raise http_error(e)
    return ActorListResponse(actors=actors)


@router.get("/fitters", response_model=ActorListResponse)
async def list_fitters(
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Active fitters available for assignment."""
    try:
        actors = await engine.list_eligible(actor, Role.FITTER)
    except HoldGateError as e:
        raise http_error(e)
    return ActorListResponse(actors=actors)


# ============================================================================
# Units
# ============================================================================


@router.get("/units/{unit_id}/queue", response_model=ClaimListResponse)
async def list_queue(
    unit_id: UUID,
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Live claims queued on a unit."""
    try:
        claims = await engine.list_queue(unit_id, date_from=date_from, date_to=date_to)
    except HoldGateError as e:
        raise http_error(e)
    return ClaimListResponse(claims=claims)


@router.post("/units/{unit_id}/finalize", response_model=UnitResponse)
async def finalize_status(
    unit_id: UUID,
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """Mark a live unit as booked."""
    try:
        unit = await engine.finalize_status(actor, unit_id)
    except HoldGateError as e:
        raise http_error(e)
    return UnitResponse(unit=unit)


# ============================================================================
# Notifications & Events
# ============================================================================


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_actor),
    engine: ReservationEngine = Depends(get_engine),
):
    """The caller's notification ledger, newest first."""
    rows = await NotificationRepository(engine.session).list_for_recipient(
        actor.actor_id, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationSchema(**row) for row in rows]
    )


@router.get("/events")
async def stream_events():
    """Server-sent stream of unit, design and fitter status changes."""

    async def event_source():
        async for event in events.stream():
            yield f"event: {event.kind.value}\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(event_source(), media_type="text/event-stream")
