"""Artifact fetchers."""

from ledgerline.sources.http import HttpArtifactFetcher

__all__ = ["HttpArtifactFetcher"]
