"""Pydantic response schemas for the FastAPI endpoints.

Field names follow the JSON contract of the upload API (camelCase).
"""

from pydantic import BaseModel


class ExtractionItem(BaseModel):
    """One successfully processed image."""

    extractedText: str
    imageId: str | None = None
    confidence: float | None = None


class UploadData(BaseModel):
    """Payload of a (partially) successful upload."""

    results: list[ExtractionItem]
    failedFiles: list[str]


class UploadResponse(BaseModel):
    """Response for an upload where at least one image succeeded."""

    success: bool = True
    message: str
    data: UploadData


class ErrorResponse(BaseModel):
    """Response for a rejected or entirely failed upload."""

    success: bool = False
    message: str
    error: str | None = None
    errors: list[str] | None = None


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    timestamp: str
    tesseractAvailable: bool


class MessageResponse(BaseModel):
    message: str
