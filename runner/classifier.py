"""Partition a live inventory into protected / known / unknown buckets.

The same algorithm serves both inventories the optimizer deals with: startup
entries (registry Run/RunOnce values) and installed packages. Each item is
checked against three ordered tables in a fixed precedence:

1. protected  -> never removable, checked first and unconditionally
2. category A -> definite junk (e.g. known bloat launchers)
3. category B -> popular / optional software the user is asked about
4. otherwise  -> unknown, labeled with its own id

Because the protected table is consulted first, no entry in a category table
can ever reclassify a protected item as removable.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pattern_matcher import Bucket, PatternEntry, PatternTable, match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryItem:
    """One enumerated startup entry or installed package.

    ``id`` is what gets matched against the pattern tables. ``source_location``
    is whatever the matching action needs to remove the item later (registry
    hive/key pair, package full name, ...); the classifier never looks at it.
    """

    id: str
    raw_value: str = ""
    source_location: Any = None


@dataclass(frozen=True)
class ClassifiedItem:
    item: InventoryItem
    bucket: Bucket
    label: str
    matched_pattern: Optional[PatternEntry] = None

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def source_location(self) -> Any:
        return self.item.source_location

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item.id,
            "label": self.label,
            "bucket": self.bucket.value,
            "pattern": self.matched_pattern.pattern if self.matched_pattern else None,
            "value": self.item.raw_value,
        }


@dataclass(frozen=True)
class PatternTables:
    """The three ordered tables a classification run is configured with."""

    protected: PatternTable = ()
    category_a: PatternTable = ()
    category_b: PatternTable = ()


@dataclass
class ClassifierResult:
    protected_items: List[ClassifiedItem] = field(default_factory=list)
    category_a_items: List[ClassifiedItem] = field(default_factory=list)
    category_b_items: List[ClassifiedItem] = field(default_factory=list)
    unknown_items: List[ClassifiedItem] = field(default_factory=list)

    def __len__(self) -> int:
        return (
            len(self.protected_items)
            + len(self.category_a_items)
            + len(self.category_b_items)
            + len(self.unknown_items)
        )

    def all_items(self) -> List[ClassifiedItem]:
        return (
            self.protected_items
            + self.category_a_items
            + self.category_b_items
            + self.unknown_items
        )

    def counts(self) -> Dict[str, int]:
        return {
            "protected": len(self.protected_items),
            "category_a": len(self.category_a_items),
            "category_b": len(self.category_b_items),
            "unknown": len(self.unknown_items),
        }


def classify_item(
    item: InventoryItem,
    protected: PatternTable,
    category_a: PatternTable,
    category_b: PatternTable,
) -> ClassifiedItem:
    entry = match(item.id, protected)
    if entry is not None:
        return ClassifiedItem(item, Bucket.PROTECTED, entry.label, entry)

    entry = match(item.id, category_a)
    if entry is not None:
        return ClassifiedItem(item, Bucket.CATEGORY_A, entry.label, entry)

    entry = match(item.id, category_b)
    if entry is not None:
        return ClassifiedItem(item, Bucket.CATEGORY_B, entry.label, entry)

    return ClassifiedItem(item, Bucket.UNKNOWN, item.id, None)


def classify(
    inventory: Sequence[InventoryItem],
    protected: PatternTable,
    category_a: PatternTable,
    category_b: PatternTable,
) -> ClassifierResult:
    """Bucket every inventory item exactly once.

    Args:
        inventory: Items enumerated from the live system, in enumeration order.
        protected: Safety whitelist, always evaluated first.
        category_a: Definite junk patterns.
        category_b: Popular/optional patterns.

    Returns:
        ClassifierResult whose four lists are disjoint, keep inventory order,
        and together hold every item of ``inventory``.
    """
    result = ClassifierResult()
    buckets = {
        Bucket.PROTECTED: result.protected_items,
        Bucket.CATEGORY_A: result.category_a_items,
        Bucket.CATEGORY_B: result.category_b_items,
        Bucket.UNKNOWN: result.unknown_items,
    }

    for item in inventory:
        classified = classify_item(item, protected, category_a, category_b)
        buckets[classified.bucket].append(classified)

    logger.debug(f"Classified {len(inventory)} items: {result.counts()}")
    return result


def classify_with(
    inventory: Sequence[InventoryItem], tables: PatternTables
) -> ClassifierResult:
    return classify(inventory, tables.protected, tables.category_a, tables.category_b)


__all__ = [
    "InventoryItem",
    "ClassifiedItem",
    "ClassifierResult",
    "PatternTables",
    "classify",
    "classify_item",
    "classify_with",
]
