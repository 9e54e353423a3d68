"""Video API router.

Upload accepts the file and answers 202 before any processing happens; the
job is dispatched as a background task once the response has been sent.
"""

import uuid
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)

from safezone.core.config import settings
from safezone.core.errors import (
    QueueFullError,
    StorageError,
    UploadTooLargeError,
    ValidationError,
)
from safezone.modules.pipeline.coordinator import JobCoordinator, UploadRequest
from safezone.modules.pipeline.runtime import PipelineRuntime
from safezone.modules.video.schemas import (
    MessageResponse,
    StreamUrlResponse,
    UploadAcceptedResponse,
    VideoResponse,
)
from safezone.modules.video.service import (
    InvalidQueryError,
    VideoNotFoundError,
    VideoNotReadyError,
    VideoService,
)

router = APIRouter(prefix="/videos", tags=["videos"])


def get_runtime(request: Request) -> PipelineRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Video pipeline is not running",
        )
    return runtime


def get_coordinator(runtime: PipelineRuntime = Depends(get_runtime)) -> JobCoordinator:
    return runtime.coordinator


def get_video_service(runtime: PipelineRuntime = Depends(get_runtime)) -> VideoService:
    return VideoService(runtime.records, runtime.storage, settings.SIGNED_URL_TTL_SECONDS)


@router.post(
    "/upload",
    response_model=UploadAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_video(
    background_tasks: BackgroundTasks,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    zone: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    x_user_id: Optional[str] = Header(None),
    coordinator: JobCoordinator = Depends(get_coordinator),
):
    """Upload a video for processing.

    The response carries the new record's id; poll ``GET /videos/{id}``
    until its status leaves ``processing``.
    """
    request = UploadRequest(
        title=title,
        description=description,
        category=category,
        zone=zone,
        filename=file.filename if file else None,
        content_type=file.content_type if file else None,
        declared_size=file.size if file else None,
        owner_id=x_user_id,
    )

    try:
        accepted = await coordinator.accept(request, file)
    except UploadTooLargeError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=e.message
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except QueueFullError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    finally:
        if file is not None:
            await file.close()

    background_tasks.add_task(coordinator.dispatch, accepted.job)
    return UploadAcceptedResponse(
        video_id=accepted.record.id,
        unique_id=accepted.record.unique_id,
    )


@router.get("", response_model=list[VideoResponse])
async def list_videos(
    category: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: Optional[int] = None,
    offset: int = 0,
    service: VideoService = Depends(get_video_service),
):
    """List videos, newest first. Without ``limit`` every match is returned."""
    try:
        records = await service.list_videos(
            category=category, status=status_filter, limit=limit, offset=offset
        )
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [VideoResponse.from_record(r) for r in records]


@router.get("/recent", response_model=list[VideoResponse])
async def recent_videos(
    limit: int = 5,
    service: VideoService = Depends(get_video_service),
):
    """Newest ready videos."""
    try:
        records = await service.recent(limit)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [VideoResponse.from_record(r) for r in records]


@router.get("/category/{category}/most-viewed", response_model=list[VideoResponse])
async def most_viewed_videos(
    category: str,
    limit: int = 5,
    service: VideoService = Depends(get_video_service),
):
    try:
        records = await service.most_viewed(category, limit)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return [VideoResponse.from_record(r) for r in records]


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
):
    """Get video by ID."""
    try:
        record = await service.get_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return VideoResponse.from_record(record)


@router.post("/{video_id}/views", response_model=VideoResponse)
async def add_view(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
):
    """Count one view."""
    try:
        record = await service.increment_views(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return VideoResponse.from_record(record)


@router.get("/{video_id}/stream", response_model=StreamUrlResponse)
async def stream_video(
    video_id: uuid.UUID,
    quality: str = "high",
    service: VideoService = Depends(get_video_service),
):
    """Signed read URL for a rendition or the thumbnail."""
    try:
        url = await service.stream_url(video_id, quality)
    except InvalidQueryError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except VideoNotReadyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return StreamUrlResponse(
        url=url, expires_in=service.signed_url_ttl, quality=quality
    )


@router.delete("/{video_id}", response_model=MessageResponse)
async def delete_video(
    video_id: uuid.UUID,
    service: VideoService = Depends(get_video_service),
):
    """Delete a video and its stored files."""
    try:
        await service.delete_video(video_id)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return MessageResponse(message="Video deleted")
