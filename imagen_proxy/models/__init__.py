from .schemas import (
    GenerationRequest,
    GenerationResult,
    ApiResponse,
)

__all__ = [
    "GenerationRequest",
    "GenerationResult",
    "ApiResponse",
]
