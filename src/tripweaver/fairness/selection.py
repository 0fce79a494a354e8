"""
Pre-selection helpers applied before routing.

- `merge_duplicate_destinations`: the same place added by several members collapses to one.
- `select_round_robin`: when the group wishlist is longer than the trip can hold, members
  take turns picking their favourite remaining destination so nobody is crowded out.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from tripweaver.core.geo import rounded_key
from tripweaver.domain.models import Destination, StandardizedPreference

logger = logging.getLogger(__name__)


def merge_duplicate_destinations(
    destinations: list[Destination],
) -> tuple[list[Destination], dict[str, str]]:
    """Merge unconstrained destinations with the same name and (rounded) coordinates.

    The copy with the longest stay survives. Returns the kept list (input order) and a
    mapping of merged-away id -> surviving id so preferences can be re-pointed.
    """
    keep_by_key: dict[tuple, Destination] = {}
    for d in destinations:
        if d.is_constrained:
            continue
        key = (d.name.strip().lower(), rounded_key(d.location))
        current = keep_by_key.get(key)
        if current is None or (d.stay_minutes or 0) > (current.stay_minutes or 0):
            keep_by_key[key] = d

    aliases: dict[str, str] = {}
    kept: list[Destination] = []
    for d in destinations:
        if d.is_constrained:
            kept.append(d)
            continue
        survivor = keep_by_key[(d.name.strip().lower(), rounded_key(d.location))]
        if survivor.id == d.id:
            kept.append(d)
        else:
            aliases[d.id] = survivor.id
    if aliases:
        logger.info("Merged %d duplicate destination(s)", len(aliases))
    return kept, aliases


def select_round_robin(
    destination_ids: list[str],
    standardized: list[StandardizedPreference],
    max_count: int,
) -> list[str]:
    """Pick up to `max_count` ids by letting members take turns (sorted by user key).

    Each turn the member takes their highest-scored destination not yet picked. Destinations
    nobody rated fill any remaining slots in input order. Output keeps input order.
    """
    if max_count >= len(destination_ids):
        return list(destination_ids)

    allowed = set(destination_ids)
    wishlists: dict[str, list[tuple[float, str]]] = defaultdict(list)
    for p in standardized:
        if p.destination_id in allowed:
            wishlists[p.user_key].append((p.standardized_score, p.destination_id))
    position = {d: i for i, d in enumerate(destination_ids)}
    for key in wishlists:
        wishlists[key].sort(key=lambda item: (-item[0], position[item[1]]))

    picked: set[str] = set()
    users = sorted(wishlists)
    while len(picked) < max_count and any(wishlists[u] for u in users):
        for user in users:
            if len(picked) >= max_count:
                break
            queue = wishlists[user]
            while queue and queue[0][1] in picked:
                queue.pop(0)
            if queue:
                picked.add(queue.pop(0)[1])

    for d in destination_ids:
        if len(picked) >= max_count:
            break
        picked.add(d)
    return [d for d in destination_ids if d in picked]
