"""Engine: stage execution, item pipelines and run orchestration.

Exports:
- StageExecutor: Records each stage call and replays recorded ones
- ItemPipeline / PipelineDefinition: One item through its stages
- BatchOrchestrator / run_pipeline: Discovery plus sequential processing
"""

from ledgerline.engine.executor import StageExecutor, input_fingerprint
from ledgerline.engine.orchestrator import BatchOrchestrator, run_pipeline, shutdown_handler_context
from ledgerline.engine.pipeline import ItemPipeline, PipelineDefinition

__all__ = [
    "BatchOrchestrator",
    "ItemPipeline",
    "PipelineDefinition",
    "StageExecutor",
    "input_fingerprint",
    "run_pipeline",
    "shutdown_handler_context",
]
