"""
Everything Is An Ordeal: Pydantic Schemas
============================================

What:  Data shapes passed between layers and returned by the JSON API.
How:   `OrdealRecord` is the store-level value every OrdealStore returns;
       the response models define the HTTP contract.

JSON field names follow the public API (`imageName`); Python attributes stay
snake_case through field aliases.
"""

from typing import Optional

from pydantic import BaseModel, Field


class OrdealRecord(BaseModel):
    """
    What:  One stored ordeal, independent of the backing store.
    Who:   Returned by every OrdealStore method; consumed by services and views.
    """
    path: str = Field(description="Normalized key (no slashes)")
    image_name: str = Field(description="Image file name relative to the uploads directory")
    hits: int = Field(default=0, ge=0, description="Views since creation")

    model_config = {"from_attributes": True}


class OrdealResponse(BaseModel):
    """
    What:  JSON representation returned by GET /api/ordeal/{path}.

    `hits` is the display value: the stored count plus the view being served.
    """
    path: str
    image_name: str = Field(alias="imageName")
    hits: int

    model_config = {"populate_by_name": True}

    @classmethod
    def for_display(cls, record: OrdealRecord) -> "OrdealResponse":
        return cls(path=record.path, image_name=record.image_name, hits=record.hits + 1)


class CreateOrdealResponse(BaseModel):
    """Returned by POST /api/ordeal/create; the client navigates to `redirect`."""
    redirect: str = Field(description="Page of the newly created ordeal, e.g. /cats")


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Please attach an image to create an ordeal.",
            "details": {"field": "image"},
            "request_id": "1a2b3c4d"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """Returned by GET /api/health."""
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    pending_hits: int = Field(description="Hit increments waiting to be written")
    uptime_seconds: float
