"""Layerfill generation - Inpainting round trip against an external service."""

from layerfill.generation.pipeline import (
    GENERATION_STAGES,
    GenerationError,
    GenerationPipeline,
    GenerationRequest,
    GenerationResult,
    GenerationService,
    PreparedSelection,
    layer_name_from_prompt,
)

__all__ = [
    "GENERATION_STAGES",
    "GenerationError",
    "GenerationPipeline",
    "GenerationRequest",
    "GenerationResult",
    "GenerationService",
    "PreparedSelection",
    "layer_name_from_prompt",
]
