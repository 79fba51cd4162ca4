"""Merging of statically configured and dynamically supplied providers."""

from __future__ import annotations

from typing import Dict, List, Sequence

from mcp_conduit.config.schema import ProviderConfig


def merge_provider_configs(
    static: Sequence[ProviderConfig],
    dynamic: Sequence[ProviderConfig],
) -> List[ProviderConfig]:
    """Combine *static* and *dynamic* providers; dynamic entries win by name.

    When either side is empty the other is returned unchanged.  Otherwise the
    result keeps the order in which each name first appeared.
    """
    if not dynamic:
        return list(static)
    if not static:
        return list(dynamic)

    merged: Dict[str, ProviderConfig] = {}
    for provider in static:
        merged[provider.name] = provider
    for provider in dynamic:
        merged[provider.name] = provider
    return list(merged.values())
