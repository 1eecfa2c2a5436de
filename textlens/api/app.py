"""FastAPI application for the textlens upload API.

Accepts batches of image uploads, runs them through the extraction
pipeline and reports per-image results, plus trivial health endpoints.
"""

import shutil
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from textlens.extraction.factory import build_pipeline, build_repository
from textlens.extraction.pipeline import ExtractionPipeline
from textlens.preprocessing.image import SourceImage
from textlens.storage.uploads import UploadStore
from textlens.utils.config import AppConfig, UploadConfig, load_config
from textlens.utils.logger import get_logger, setup_logging

from .schemas import (
    ErrorResponse,
    ExtractionItem,
    HealthResponse,
    MessageResponse,
    UploadData,
    UploadResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_pipeline(request: Request) -> ExtractionPipeline:
    return request.app.state.pipeline


def get_upload_store(request: Request) -> UploadStore:
    return request.app.state.upload_store


def _error(status_code: int, message: str, **detail: object) -> JSONResponse:
    body = ErrorResponse(message=message, **detail)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def validate_upload(
    filename: str, content_type: str | None, size: int, config: UploadConfig
) -> str | None:
    """Check an upload against the type and size limits.

    Both the file extension and the declared MIME type must name an
    allowed image type.

    Returns:
        Human-readable rejection reason, or ``None`` if the file is accepted.
    """
    extension = Path(filename).suffix.lower().lstrip(".")
    mime = (content_type or "").lower()
    if extension not in config.allowed_extensions or not any(
        kind in mime for kind in config.allowed_extensions
    ):
        allowed = ", ".join(config.allowed_extensions)
        return f"Failed to process {filename}: Images only ({allowed})"
    if size > config.max_file_bytes:
        limit_mb = config.max_file_bytes // (1024 * 1024)
        return f"Failed to process {filename}: File exceeds the {limit_mb}MB upload limit"
    return None


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service liveness."""
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        tesseractAvailable=shutil.which("tesseract") is not None,
    )


@router.get("/test", response_model=MessageResponse)
async def api_test() -> MessageResponse:
    return MessageResponse(message="API is working")


@router.post("/test-upload", response_model=MessageResponse)
async def api_test_upload() -> MessageResponse:
    return MessageResponse(message="Upload endpoint is reachable")


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_images(
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    store: Annotated[UploadStore, Depends(get_upload_store)],
    config: Annotated[AppConfig, Depends(get_config)],
    images: Annotated[list[UploadFile] | None, File()] = None,
) -> UploadResponse | JSONResponse:
    """Extract text from up to ``max_files`` uploaded images.

    Args:
        images: Uploaded image files (multipart field ``images``).

    Returns:
        200 with per-image results when any image succeeded, 400 when no
        or too many files were sent, 500 when every image failed.
    """
    if not images:
        logger.info("Upload request without files")
        return _error(
            400,
            "No image files uploaded",
            error="Please select at least one image file to upload",
        )

    limits = config.upload
    if len(images) > limits.max_files:
        return _error(
            400,
            "Too many files uploaded",
            error=f"At most {limits.max_files} images can be uploaded per request",
        )

    try:
        rejections: list[str | None] = []
        accepted: list[SourceImage] = []
        for upload in images:
            filename = upload.filename or "unknown"
            content = await upload.read(limits.max_file_bytes + 1)
            reason = validate_upload(filename, upload.content_type, len(content), limits)
            if reason:
                logger.warning("Rejected upload: %s", reason)
                rejections.append(reason)
                continue
            path = await run_in_threadpool(store.save, content, filename)
            rejections.append(None)
            accepted.append(
                SourceImage(
                    data=content,
                    filename=filename,
                    mime_type=upload.content_type,
                    storage_ref=str(path),
                )
            )

        batch = await run_in_threadpool(pipeline.process_batch, accepted)
    except Exception as exc:
        logger.error("Error in upload endpoint: %s", exc)
        return _error(
            500,
            "Image processing failed",
            error=str(exc) or "An unexpected error occurred while processing the image",
        )

    outcomes = iter(batch.outcomes)
    failed_files: list[str] = []
    for reason in rejections:
        if reason is not None:
            failed_files.append(reason)
            continue
        outcome = next(outcomes)
        if not outcome.success:
            failed_files.append(outcome.error or f"Failed to process {outcome.filename}")

    if not batch.success:
        return _error(500, "All image processing failed", errors=failed_files)

    succeeded = batch.succeeded
    logger.info("Successfully processed %d images", len(succeeded))
    return UploadResponse(
        message=f"Processed {len(succeeded)} out of {len(images)} images successfully",
        data=UploadData(
            results=[
                ExtractionItem(
                    extractedText=o.extracted.text,
                    imageId=o.extracted.image_id,
                    confidence=o.extracted.confidence,
                )
                for o in succeeded
                if o.extracted is not None
            ],
            failedFiles=failed_files,
        ),
    )


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the FastAPI application.

    The extraction pipeline, its record store and the OCR engine are set
    up in the lifespan handler, so a missing Tesseract binary or an
    unreachable database fails at startup rather than per request.

    Args:
        config: Application configuration; loaded from YAML when omitted.

    Returns:
        Configured application.
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(config.log_level)
        repository = build_repository(config)
        repository.connect()
        pipeline = build_pipeline(config, sink=repository)
        pipeline.recognizer.initialize()
        app.state.pipeline = pipeline
        try:
            yield
        finally:
            repository.close()

    app = FastAPI(
        title="textlens OCR API",
        description="Extract clean text from photos of printed text",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.upload_store = UploadStore(config.upload.upload_dir)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept"],
    )
    app.include_router(router)
    return app


app = create_app()
