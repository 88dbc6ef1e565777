"""Collection membership and parent-chain lookups for a single entry."""

from __future__ import annotations

import logging
from typing import Mapping

from bibnotes.common.entities import Collection, Entry

logger = logging.getLogger(__name__)

MAX_ANCESTRY_DEPTH = 32


def collections_for(entry: Entry, collections: Mapping[str, Collection]) -> list[Collection]:
    """Collections that list *entry* as a member, in snapshot order."""
    item_id = str(entry.item_id)
    return [c for c in collections.values() if item_id in c.member_item_ids]


def collection_ancestry(
    key: str,
    collections: Mapping[str, Collection],
    max_depth: int = MAX_ANCESTRY_DEPTH,
) -> list[Collection]:
    """Walk parent pointers upwards from *key*, nearest parent first.

    Parent links are not validated at extraction time, so the walk stops at a
    missing key, at a repeated key, or after *max_depth* steps.
    """
    chain: list[Collection] = []
    seen = {key}
    current = collections.get(key)
    while current is not None and current.parent_key:
        if current.parent_key in seen:
            logger.warning("Collection cycle detected at %r", current.parent_key)
            break
        if len(chain) >= max_depth:
            logger.warning("Collection ancestry of %r exceeds %d levels", key, max_depth)
            break
        seen.add(current.parent_key)
        current = collections.get(current.parent_key)
        if current is not None:
            chain.append(current)
    return chain


def collection_names(entry: Entry, collections: Mapping[str, Collection]) -> list[str]:
    """Sorted names of the collections containing *entry*."""
    return sorted(c.name for c in collections_for(entry, collections))


def collection_names_with_parents(
    entry: Entry, collections: Mapping[str, Collection]
) -> list[str]:
    """Sorted names of the containing collections plus all of their ancestors."""
    names: set[str] = set()
    for collection in collections_for(entry, collections):
        names.add(collection.name)
        names.update(parent.name for parent in collection_ancestry(collection.key, collections))
    return sorted(names)
