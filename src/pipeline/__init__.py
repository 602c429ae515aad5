"""Pipeline modules: the orchestration layer for visual-garden.

  ingest: uploaded image -> record directory -> Cloudinary -> git

Pipeline modules import domain logic via public APIs:
  - ``from visual_garden.content import ...`` (not ``visual_garden.content.store``)
  - ``from visual_garden.integrations.* import ...`` for external systems.
"""

from visual_garden.pipeline.ingest import (
    IngestionOrchestrator,
    IngestRequest,
    IngestResult,
    IngestState,
    MutationResult,
)

__all__ = [
    "IngestRequest",
    "IngestResult",
    "IngestState",
    "IngestionOrchestrator",
    "MutationResult",
]
