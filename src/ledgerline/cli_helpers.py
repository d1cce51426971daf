"""CLI helper functions for pipeline construction and ledger access."""

from __future__ import annotations

import dataclasses
import importlib
from collections.abc import Callable
from typing import TYPE_CHECKING

from ledgerline.contracts import OrchestrationInvariantError

if TYPE_CHECKING:
    from ledgerline.core.config import LedgerlineSettings
    from ledgerline.core.ledger import LedgerDB
    from ledgerline.engine.pipeline import PipelineDefinition
    from ledgerline.llm.generator import StructuredGenerator

PipelineFactory = Callable[["LedgerlineSettings"], "PipelineDefinition"]


def resolve_factory(path: str) -> PipelineFactory:
    """Import a 'package.module:factory' callable.

    Raises:
        ImportError: If the module cannot be imported
        AttributeError: If the module has no such attribute
        TypeError: If the attribute is not callable
    """
    module_name, _, attr = path.partition(":")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    if not callable(factory):
        raise TypeError(f"Pipeline factory '{path}' is not callable")
    result: PipelineFactory = factory
    return result


def build_generator(settings: LedgerlineSettings) -> StructuredGenerator:
    """StructuredGenerator wired to the configured OpenAI-compatible service.

    For use inside pipeline factories.
    """
    from ledgerline.llm.client import create_openai_client
    from ledgerline.llm.generator import StructuredGenerator

    client = create_openai_client(settings.llm, timeout=settings.timeouts.generate)
    return StructuredGenerator(client, temperature=settings.llm.temperature, provider=settings.llm.provider)


def build_definition(settings: LedgerlineSettings) -> PipelineDefinition:
    """Call the configured factory and apply settings that override it.

    Timeouts and the publish resource always come from settings. With
    publish.dry_run the factory's publisher is replaced by DryRunPublisher,
    so a dry run can never post.
    """
    from ledgerline.engine.pipeline import PipelineDefinition
    from ledgerline.sinks.publish import DryRunPublisher

    factory = resolve_factory(settings.pipeline)
    definition = factory(settings)
    if not isinstance(definition, PipelineDefinition):
        raise OrchestrationInvariantError(
            f"Pipeline factory '{settings.pipeline}' returned {type(definition).__name__}, expected PipelineDefinition"
        )

    overrides: dict[str, object] = {
        "timeouts": settings.timeouts,
        "publish_resource": settings.publish.resource,
    }
    if settings.publish.dry_run:
        overrides["publisher"] = DryRunPublisher()
    return dataclasses.replace(definition, **overrides)


def open_ledger(settings: LedgerlineSettings) -> LedgerDB:
    """Open (creating if needed) the configured ledger database."""
    from ledgerline.core.ledger import LedgerDB

    return LedgerDB.from_url(settings.ledger.url)
