"""
Render pipeline: generation and storage adapters, the executor, the
timeout reaper and the request-side service.
"""

from .generation import GenerationService, GenerationResult, GenerationError
from .storage import SupabaseStorage, LocalStorage, StorageError, create_storage
from .pipeline import RenderPipeline, PipelineResult, RenderCommitError
from .reaper import TimeoutReaper
from .service import RenderService, RenderAdmissionError, RenderAccessError

__all__ = [
    "GenerationService",
    "GenerationResult",
    "GenerationError",
    "SupabaseStorage",
    "LocalStorage",
    "StorageError",
    "create_storage",
    "RenderPipeline",
    "PipelineResult",
    "RenderCommitError",
    "TimeoutReaper",
    "RenderService",
    "RenderAdmissionError",
    "RenderAccessError",
]
