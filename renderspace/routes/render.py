"""
Render API Routes

Endpoints for submitting renders, polling their status and streaming
live completion events.
"""

from typing import Optional, List

from fastapi import APIRouter, HTTPException, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from renderspace.database.credits import InsufficientCreditsError, AccountNotFoundError
from renderspace.database.jobs import RenderJobNotFoundError
from renderspace.database.models import RenderJob
from renderspace.events.gateway import stream_user_events, SSE_HEADERS
from renderspace.render.service import RenderAdmissionError, RenderAccessError
from renderspace.routes.auth import AuthenticatedUser, get_current_user, get_services
from renderspace.utils.logging import api_logger as logger


router = APIRouter(prefix="/api/render", tags=["render"])


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateRenderRequest(BaseModel):
    """Collage -> room render. Fields are validated by the service (400)."""
    title: Optional[str] = None
    room_type: Optional[str] = None
    lighting: Optional[str] = None
    input_image_url: Optional[str] = None


class PlaceCollageRequest(BaseModel):
    """Place a collage's style into a photo of a real room."""
    room_photo_url: Optional[str] = None
    collage_image_url: Optional[str] = None
    title: Optional[str] = None
    room_type: Optional[str] = None
    lighting: Optional[str] = None


class CreateRenderResponse(BaseModel):
    success: bool
    job_id: str


class RenderJobListResponse(BaseModel):
    jobs: List[RenderJob]
    total: int


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def _admission_error(e: Exception) -> HTTPException:
    if isinstance(e, RenderAdmissionError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, InsufficientCreditsError):
        return HTTPException(status_code=402, detail=str(e))
    return HTTPException(status_code=404, detail=str(e))


# =============================================================================
# Submission Routes
# =============================================================================

@router.post("/create", response_model=CreateRenderResponse)
async def create_render(
    body: CreateRenderRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """Queue a single-step render (1 credit, charged on completion)."""
    try:
        job = await services.render.submit_transform(
            owner_id=user.user_id,
            account_id=user.account_id,
            title=body.title,
            room_type=body.room_type,
            lighting=body.lighting,
            input_image_url=body.input_image_url,
            ip_address=_client_ip(request),
        )
    except (RenderAdmissionError, InsufficientCreditsError, AccountNotFoundError) as e:
        raise _admission_error(e)

    return CreateRenderResponse(success=True, job_id=job.id)


@router.post("/place-collage", response_model=CreateRenderResponse)
async def place_collage(
    body: PlaceCollageRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """Queue a two-step placement render (2 credits, charged on completion)."""
    try:
        job = await services.render.submit_placement(
            owner_id=user.user_id,
            account_id=user.account_id,
            title=body.title,
            room_type=body.room_type,
            lighting=body.lighting,
            room_photo_url=body.room_photo_url,
            collage_image_url=body.collage_image_url,
            ip_address=_client_ip(request),
        )
    except (RenderAdmissionError, InsufficientCreditsError, AccountNotFoundError) as e:
        raise _admission_error(e)

    return CreateRenderResponse(success=True, job_id=job.id)


# =============================================================================
# Status Routes
# =============================================================================

@router.get("/status", response_model=RenderJob)
async def get_render_status(
    id: Optional[str] = Query(default=None),
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """
    Get a render job's current record.

    Jobs stuck past the render timeout are failed on read.
    """
    if not id:
        raise HTTPException(status_code=400, detail="Job ID is required")

    try:
        return await services.render.get_status(id, user.user_id)
    except RenderJobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except RenderAccessError:
        raise HTTPException(status_code=403, detail="Unauthorized")


@router.get("/active", response_model=Optional[RenderJob])
async def get_active_render(
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """Most recent in-flight render, or null."""
    return await services.render.get_active(user.user_id)


@router.get("/jobs", response_model=RenderJobListResponse)
async def list_renders(
    limit: int = Query(default=50, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """The account's recent renders, newest first."""
    jobs = await services.render.list_jobs(user.account_id, limit=limit)
    return RenderJobListResponse(jobs=jobs, total=len(jobs))


@router.get("/events")
async def render_events(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    services=Depends(get_services),
):
    """
    Live render events for the caller, as Server-Sent Events.

    Clients should still poll /status after reconnecting; events published
    while disconnected are not replayed.
    """
    logger.info("Opening render event stream", user_id=user.user_id)

    return StreamingResponse(
        stream_user_events(
            services.broker,
            user.user_id,
            is_disconnected=request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
