"""Collapse a raw trust-relation list into the root's counterparts."""

from __future__ import annotations

from typing import Iterable

from circles.models import Counterpart, TrustRelation
from utils.addressing import normalize_address


def aggregate_counterparts(root: str, relations: Iterable[TrustRelation]) -> list[Counterpart]:
    """Deduplicated counterparts of ``root`` in first-sighting order.

    A counterpart is mutual only when both ``root -> c`` and ``c -> root`` are
    present as separate entries.
    """
    root_key = normalize_address(root)
    rows = list(relations or [])

    edges: set[tuple[str, str]] = set()
    for rel in rows:
        edges.add((normalize_address(rel.truster), normalize_address(rel.trustee)))

    order: list[str] = []
    display: dict[str, str] = {}
    mutual: dict[str, bool] = {}
    for rel in rows:
        truster = normalize_address(rel.truster)
        trustee = normalize_address(rel.trustee)
        if truster == root_key and trustee == root_key:
            continue
        if truster == root_key:
            key, raw = trustee, rel.trustee
        elif trustee == root_key:
            key, raw = truster, rel.truster
        else:
            continue
        if not key:
            continue
        is_mutual = (root_key, key) in edges and (key, root_key) in edges
        if key not in mutual:
            order.append(key)
            display[key] = str(raw).strip()
            mutual[key] = is_mutual
        else:
            mutual[key] = mutual[key] or is_mutual
    return [Counterpart(address=display[key], mutual_trust=mutual[key]) for key in order]
