# Copyright 2025 ovs-stat contributors
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""In-memory entity graph shared by the pipeline stages."""

from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Hashable

from ovs_stat.models import ENTITY_KINDS


class EntityStore:
    """Mapping of (kind, key) to entity records.

    Inserts overwrite. Stages are separated by a join barrier and each unit
    owns the keys it writes. Get-or-create and changes to entities shared
    between units of one stage go through the store lock.
    """

    def __init__(self) -> None:
        self._entities: dict[str, dict[Hashable, Any]] = {kind: {} for kind in ENTITY_KINDS}
        self._parents: dict[str, dict[Hashable, Hashable]] = {kind: {} for kind in ENTITY_KINDS}
        self._lock = threading.Lock()

    def put(self, kind: str, key: Hashable, entity: Any, parent: Hashable | None = None) -> Any:
        """Insert or overwrite an entity."""

        table = self._table(kind)
        table[key] = entity
        if parent is not None:
            self._parents[kind][key] = parent
        return entity

    def setdefault(
        self,
        kind: str,
        key: Hashable,
        factory: Callable[[], Any],
        parent: Hashable | None = None,
    ) -> Any:
        """Return the entity under key, creating it with factory when absent."""

        table = self._table(kind)
        with self._lock:
            entity = table.get(key)
            if entity is None:
                entity = self.put(kind, key, factory(), parent)
            return entity

    def update(self, kind: str, key: Hashable, change: Callable[[Any], None]) -> Any:
        """Apply change to an existing entity while holding the store lock."""

        entity = self._table(kind).get(key)
        if entity is None:
            raise KeyError(f"{kind} {key} not found")
        with self._lock:
            change(entity)
        return entity

    def get(self, kind: str, key: Hashable) -> Any | None:
        return self._table(kind).get(key)

    def contains(self, kind: str, key: Hashable) -> bool:
        return key in self._table(kind)

    def keys(self, kind: str) -> list[Hashable]:
        """Return keys of a kind in sorted order."""

        return sorted(self._table(kind), key=_sort_key)

    def all(self, kind: str) -> list[Any]:
        """Return entities of a kind ordered by key."""

        table = self._table(kind)
        return [table[key] for key in self.keys(kind)]

    def children(self, kind: str, parent: Hashable) -> list[Any]:
        """Return entities of a kind whose parent key matches."""

        table = self._table(kind)
        parents = self._parents[kind]
        return [table[key] for key in self.keys(kind) if parents.get(key) == parent]

    def parent_of(self, kind: str, key: Hashable) -> Hashable | None:
        return self._parents[kind].get(key)

    def count(self, kind: str) -> int:
        return len(self._table(kind))

    def snapshot(self) -> dict[str, dict[Hashable, Any]]:
        """Return a deep copy of every entity, for comparison and serialization."""

        return {kind: copy.deepcopy(self._entities[kind]) for kind in ENTITY_KINDS}

    def _table(self, kind: str) -> dict[Hashable, Any]:
        try:
            return self._entities[kind]
        except KeyError:
            raise ValueError(f"unknown entity kind: {kind}") from None


def _sort_key(key: Hashable) -> tuple[str, str]:
    """Order mixed keys deterministically, numbers by value."""

    if isinstance(key, int):
        return ("0", f"{key:020d}")
    if isinstance(key, tuple):
        return ("1", "\x00".join(str(part) for part in key))
    return ("2", str(key))
