"""
Category hierarchy resolution over a flat snapshot of category records.

Records are plain mappings with an ``id`` and a parent reference (``parent_id``
by default). Stores that exported categories from a document database may
carry an empty string instead of null for "no parent"; both mean root here.

The resolver links exactly one level in each direction and never walks an
ancestor chain, so malformed (cyclic or deeper than two tiers) data cannot
make it loop. It logs such data instead; `find_cycles` and `ancestor_ids` are
for the write path and diagnostics.
"""
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

PARENT_KEY = 'parent_id'


def normalize_parent_ref(value):
    """Map every spelling of "no parent" (None, '', whitespace) to None"""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _normalized(records: Iterable[Mapping], parent_key: str) -> List[Dict[str, Any]]:
    normalized = []
    for record in records:
        item = dict(record)
        item[parent_key] = normalize_parent_ref(item.get(parent_key))
        normalized.append(item)
    return normalized


def resolve_category_tree(records: Iterable[Mapping], parent_key: str = PARENT_KEY) -> List[Dict[str, Any]]:
    """
    Annotate every record with its resolved ``parent`` and ``subcategories``.

    Pass one indexes records by id and groups them by parent reference; pass
    two attaches the parent record (or None) and the children in stored order.

    Returns:
        list of dicts in input order; ``parent`` and ``subcategories`` hold plain
        copies of the linked records (without their own links)
    """
    items = _normalized(records, parent_key)

    by_id: Dict[Any, Dict[str, Any]] = {}
    children: Dict[Any, List[Dict[str, Any]]] = defaultdict(list)
    for item in items:
        by_id[item['id']] = item
        parent_id = item[parent_key]
        if parent_id is not None and parent_id != item['id']:
            children[parent_id].append(item)

    resolved = []
    for item in items:
        parent_id = item[parent_key]
        parent = None
        if parent_id == item['id']:
            logger.warning(f"Category {item['id']} references itself as parent; ignoring the link")
        elif parent_id is not None:
            parent = by_id.get(parent_id)
            if parent is None:
                logger.warning(f"Category {item['id']} references missing parent {parent_id}")
            elif parent[parent_key] is not None:
                logger.warning(
                    f"Category {item['id']} is nested more than two tiers deep "
                    f"(parent {parent_id} has parent {parent[parent_key]})"
                )

        resolved.append({
            **item,
            'parent': dict(parent) if parent is not None else None,
            'subcategories': [dict(child) for child in children.get(item['id'], [])],
        })
    return resolved


def root_categories(records: Iterable[Mapping], parent_key: str = PARENT_KEY) -> List[Dict[str, Any]]:
    """Records with no parent reference, in input order"""
    return [item for item in _normalized(records, parent_key) if item[parent_key] is None]


def ancestor_ids(start_id, parent_of: Mapping) -> List[Any]:
    """
    Walk up from `start_id` (inclusive) following `parent_of`.

    Stops at a root, a dangling reference, or the first repeated id, so it
    terminates on cyclic data too.
    """
    chain = []
    seen = set()
    current = normalize_parent_ref(start_id)
    while current is not None and current not in seen:
        seen.add(current)
        chain.append(current)
        current = normalize_parent_ref(parent_of.get(current))
    return chain


def would_create_cycle(category_id, new_parent_id, parent_of: Mapping) -> bool:
    """True if making `new_parent_id` the parent of `category_id` closes a loop"""
    new_parent_id = normalize_parent_ref(new_parent_id)
    if new_parent_id is None:
        return False
    if new_parent_id == category_id:
        return True
    return category_id in ancestor_ids(new_parent_id, parent_of)


def find_cycles(parent_of: Mapping) -> List[List[Any]]:
    """Every distinct parent-reference cycle, each as a list of ids"""
    cycles = []
    on_cycle = set()
    for start in parent_of:
        if start in on_cycle:
            continue
        path = []
        position = {}
        current: Optional[Any] = start
        while current is not None and current not in position:
            if current in on_cycle:
                break
            position[current] = len(path)
            path.append(current)
            current = normalize_parent_ref(parent_of.get(current))
        if current is not None and current in position:
            cycle = path[position[current]:]
            on_cycle.update(cycle)
            cycles.append(cycle)
    return cycles
