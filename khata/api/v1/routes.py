import time
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile, status
from loguru import logger

from khata.api.limiter import limiter
from khata.core.config import settings
from khata.models.schemas import (
    ErrorResponse,
    ExtractionRequest,
    ExtractionResponse,
    HealthResponse,
    MarkRecord,
    MarkTarget,
    RosterStudent,
    RowEdit,
    SessionCreateRequest,
    SessionView,
)
from khata.repositories.base import MarkRepository, RosterRepository
from khata.repositories.providers import get_mark_repository, get_roster_repository
from khata.services.extraction import extraction_service
from khata.services.session import ReviewSessionStore, get_session_store
from khata.utils import messages
from khata.utils.exceptions import KhataError
from khata.utils.file_processor import file_processor


router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid images or request"},
    404: {"model": ErrorResponse, "description": "Session or row not found"},
    409: {"model": ErrorResponse, "description": "Action not allowed in the current step"},
    413: {"model": ErrorResponse, "description": "Image too large"},
    422: {"model": ErrorResponse, "description": "Extraction failed"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    503: {"model": ErrorResponse, "description": "AI service unavailable"},
}


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API and AI provider health status"
)
async def health_check():
    circuit_state = extraction_service.circuit_breaker.state.value
    try:
        llm_healthy, provider = await extraction_service.health_check()
        return HealthResponse(
            status="healthy" if llm_healthy else "degraded",
            version=settings.app_version,
            llm_provider=provider,
            llm_status="connected" if llm_healthy else "disconnected",
            circuit_state=circuit_state,
        )
    except Exception as e:
        logger.error(f"Health check error: {e}")
        return HealthResponse(
            status="unhealthy",
            version=settings.app_version,
            llm_provider=settings.default_llm_provider,
            llm_status=f"error: {str(e)}",
            circuit_state=circuit_state,
        )


@router.post(
    "/khata/extract",
    response_model=ExtractionResponse,
    responses=ERROR_RESPONSES,
    summary="Extract Marks From Khata Images",
    description="Send 1-5 khata photos (data URLs) and get roll number, name and total marks per student"
)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def extract_khata_marks(request: Request, payload: ExtractionRequest):
    start_time = time.time()

    images = await file_processor.prepare_data_urls(payload.images)
    logger.info(
        f"Extracting khata marks: {len(images)} image(s) for class={payload.class_id} "
        f"subject={payload.subject_id} term={payload.term} year={payload.year}"
    )
    extraction = await extraction_service.extract(images)

    processing_time = round((time.time() - start_time) * 1000, 2)

    if extraction.is_empty:
        return ExtractionResponse(
            success=False,
            error=messages.NOTHING_FOUND,
            error_code="NO_DATA_FOUND",
            warnings=extraction.warnings,
            total_images_processed=extraction.images_processed,
            processing_time_ms=processing_time,
        )

    return ExtractionResponse(
        success=True,
        extracted_marks=extraction.extracted_marks,
        warnings=extraction.warnings,
        total_images_processed=extraction.images_processed,
        total_students_extracted=len(extraction.extracted_marks),
        processing_time_ms=processing_time,
    )


@router.get(
    "/schema",
    summary="Get Response Schema",
    description="Get the JSON schema of a review session"
)
async def get_schema():
    return SessionView.model_json_schema(by_alias=True)


# review sessions

@router.post(
    "/sessions",
    response_model=SessionView,
    status_code=status.HTTP_201_CREATED,
    summary="Open Review Session"
)
async def create_session(
    payload: SessionCreateRequest,
    store: ReviewSessionStore = Depends(get_session_store),
    roster_repo: RosterRepository = Depends(get_roster_repository),
    mark_repo: MarkRepository = Depends(get_mark_repository),
):
    target = MarkTarget(
        class_id=payload.class_id,
        subject_id=payload.subject_id,
        term=payload.term,
        year=payload.year,
    )
    session = store.create(target, roster_repo, mark_repo, teacher_id=payload.teacher_id)
    return session.view()


@router.get("/sessions/{session_id}", response_model=SessionView, responses=ERROR_RESPONSES)
async def get_session(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    return store.get(session_id).view()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES)
async def close_session(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    store.close(session_id)


@router.post(
    "/sessions/{session_id}/images",
    response_model=SessionView,
    responses=ERROR_RESPONSES,
    summary="Upload Khata Images",
    description="Upload 1-5 khata photos (or PDF scans); runs extraction and roster matching"
)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def upload_images(
    request: Request,
    session_id: str,
    files: Optional[List[UploadFile]] = File(default=None, description="Khata photos"),
    store: ReviewSessionStore = Depends(get_session_store),
):
    session = store.get(session_id)
    files = files or []

    uploads = []
    try:
        for file in files:
            uploads.append((await file.read(), file.filename, file.content_type))
    finally:
        for file in files:
            await file.close()

    try:
        images = await file_processor.prepare_uploads(uploads)
    except KhataError as e:
        logger.info(f"Session {session_id}: intake rejected ({e.error_code})")
        session.reject_input(e.message)
        return session.view()

    await session.run_extraction(images, extraction_service)
    return session.view()


@router.post("/sessions/{session_id}/rows", response_model=SessionView, responses=ERROR_RESPONSES)
async def add_row(session_id: str, payload: RowEdit, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.add_row(
        roll_number=payload.roll_number or "",
        name=payload.name or "",
        total_marks=payload.total_marks if payload.total_marks is not None else 0,
    )
    return session.view()


@router.patch("/sessions/{session_id}/rows/{index}", response_model=SessionView, responses=ERROR_RESPONSES)
async def edit_row(
    session_id: str,
    index: int,
    payload: RowEdit,
    store: ReviewSessionStore = Depends(get_session_store),
):
    session = store.get(session_id)
    session.edit_row(index, **payload.model_dump(exclude_none=True))
    return session.view()


@router.delete("/sessions/{session_id}/rows/{index}", response_model=SessionView, responses=ERROR_RESPONSES)
async def delete_row(session_id: str, index: int, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.delete_row(index)
    return session.view()


@router.post("/sessions/{session_id}/back", response_model=SessionView, responses=ERROR_RESPONSES)
async def go_back(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.go_back()
    return session.view()


@router.post(
    "/sessions/{session_id}/proceed",
    response_model=SessionView,
    responses=ERROR_RESPONSES,
    description="Validate, check for existing marks, and save when nothing would be overwritten"
)
async def proceed(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.proceed()
    return session.view()


@router.post("/sessions/{session_id}/confirm", response_model=SessionView, responses=ERROR_RESPONSES)
async def confirm_overwrite(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.confirm_overwrite()
    return session.view()


@router.post("/sessions/{session_id}/cancel", response_model=SessionView, responses=ERROR_RESPONSES)
async def cancel_overwrite(session_id: str, store: ReviewSessionStore = Depends(get_session_store)):
    session = store.get(session_id)
    session.cancel_overwrite()
    return session.view()


# read-only views of the stores

@router.get("/classes/{class_id}/students", response_model=List[RosterStudent])
async def list_students(class_id: str, roster_repo: RosterRepository = Depends(get_roster_repository)):
    return roster_repo.lookup(class_id)


@router.get("/classes/{class_id}/marks", response_model=List[MarkRecord])
async def list_marks(
    class_id: str,
    subject_id: str = Query(..., alias="subjectId"),
    term: int = Query(..., ge=1, le=3),
    year: int = Query(...),
    mark_repo: MarkRepository = Depends(get_mark_repository),
):
    return mark_repo.query(class_id, subject_id, term, year)
