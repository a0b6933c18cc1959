"""API schemas."""

from stormlink.schemas.common import ErrorResponse, SuccessResponse

__all__ = ["ErrorResponse", "SuccessResponse"]
