"""Turn a classification result and a user-selected mode into a removal plan.

The planner decides *what* to act on; it never touches the system. Per-item
questions go through an injected ``confirm(prompt) -> bool`` callback (or a
pre-resolved set of ids), so the same code serves the interactive menu and the
unattended "run all" pipeline.

For startup entries the planner also derives search terms used to find related
scheduled tasks (vendor updaters, tray helpers, ...). Tasks matching the
protected-task table are never returned, however broad a derived term is.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Collection, Dict, FrozenSet, Iterable, List, Optional, Tuple

from classifier import ClassifiedItem, ClassifierResult
from pattern_matcher import Bucket, PatternTable, match, strip_wildcards

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

# Shorter terms match far too many task names ("hp", "ms", ...)
DEFAULT_MIN_TERM_LENGTH = 3

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


class Mode(Enum):
    ALL_NON_ESSENTIAL = "all_non_essential"
    CATEGORY_A_ONLY = "category_a_only"
    CATEGORY_A_PLUS_CHOSEN_B = "category_a_plus_chosen_b"
    INDIVIDUAL = "individual"
    NONE = "none"

    @classmethod
    def parse(cls, value) -> "Mode":
        """Accept a Mode, its value, its name, or a menu number ("1".."5")."""
        if isinstance(value, Mode):
            return value
        text = str(value or "").strip().lower()
        by_number = {
            "1": cls.ALL_NON_ESSENTIAL,
            "2": cls.CATEGORY_A_ONLY,
            "3": cls.CATEGORY_A_PLUS_CHOSEN_B,
            "4": cls.INDIVIDUAL,
            "5": cls.NONE,
        }
        if text in by_number:
            return by_number[text]
        for mode in cls:
            if text in (mode.value, mode.name.lower()):
                return mode
        raise ValueError(f"Unknown removal mode: {value!r}")


@dataclass
class RemovalPlan:
    targets: List[ClassifiedItem] = field(default_factory=list)
    derived_task_search_terms: FrozenSet[str] = frozenset()

    def __len__(self) -> int:
        return len(self.targets)


def _item_key(item: ClassifiedItem) -> Tuple[str, str]:
    return (item.id.lower(), repr(item.source_location))


def _decide(
    item: ClassifiedItem,
    confirm: Optional[Confirm],
    chosen_ids: Optional[Collection[str]],
) -> bool:
    if chosen_ids is not None:
        return item.id.lower() in chosen_ids
    if confirm is None:
        return False
    if item.bucket is Bucket.UNKNOWN:
        prompt = f"Remove unrecognised entry '{item.id}'?"
    else:
        prompt = f"Remove {item.label} ({item.id})?"
    return bool(confirm(prompt))


def plan(
    classified: ClassifierResult,
    mode,
    confirm: Optional[Confirm] = None,
    chosen_ids: Optional[Collection[str]] = None,
    min_term_length: int = DEFAULT_MIN_TERM_LENGTH,
    derive_task_terms: bool = True,
) -> RemovalPlan:
    """Compute the exact, ordered set of items to act on.

    Args:
        classified: Output of the classifier.
        mode: A ``Mode`` (or anything ``Mode.parse`` accepts).
        confirm: Blocking yes/no callback used for per-item decisions in the
            mixed and individual modes. Answering True means "remove".
        chosen_ids: Pre-resolved ids to remove, used instead of ``confirm``.
            Compared case-insensitively.
        min_term_length: Minimum length of a derived task search term.
        derive_task_terms: Set False for inventories without related tasks
            (installed packages).

    Returns:
        RemovalPlan. Protected items never appear in ``targets``.
    """
    mode = Mode.parse(mode)
    if chosen_ids is not None:
        chosen_ids = {str(item_id).lower() for item_id in chosen_ids}

    candidates: List[ClassifiedItem] = []
    if mode is Mode.ALL_NON_ESSENTIAL:
        candidates = classified.category_a_items + classified.category_b_items
    elif mode is Mode.CATEGORY_A_ONLY:
        candidates = list(classified.category_a_items)
    elif mode is Mode.CATEGORY_A_PLUS_CHOSEN_B:
        candidates = list(classified.category_a_items)
        candidates += [
            item
            for item in classified.category_b_items
            if _decide(item, confirm, chosen_ids)
        ]
    elif mode is Mode.INDIVIDUAL:
        pool = (
            classified.category_a_items
            + classified.category_b_items
            + classified.unknown_items
        )
        candidates = [item for item in pool if _decide(item, confirm, chosen_ids)]

    protected_keys = {_item_key(item) for item in classified.protected_items}
    protected_ids = {item.id.lower() for item in classified.protected_items}

    targets: List[ClassifiedItem] = []
    seen = set()
    for item in candidates:
        key = _item_key(item)
        if (
            item.bucket is Bucket.PROTECTED
            or key in protected_keys
            or item.id.lower() in protected_ids
        ):
            logger.warning(f"Refusing to plan removal of protected item: {item.id}")
            continue
        if key in seen:
            continue
        seen.add(key)
        targets.append(item)

    terms: FrozenSet[str] = frozenset()
    if derive_task_terms and targets:
        terms = frozenset(derive_task_search_terms(targets, min_term_length))

    logger.info(f"Removal plan ({mode.value}): {len(targets)} item(s)")
    return RemovalPlan(targets=targets, derived_task_search_terms=terms)


def derive_task_search_terms(
    targets: Iterable[ClassifiedItem], min_length: int = DEFAULT_MIN_TERM_LENGTH
) -> List[str]:
    """Build scheduled-task search terms from removed items, in first-seen order.

    For each item: the id with non-alphanumerics stripped, then the matched
    pattern with wildcards (and other non-alphanumerics) stripped when it
    differs from the first term. Terms shorter than ``min_length`` are dropped.
    """
    terms: Dict[str, None] = {}
    for item in targets:
        id_term = _NON_ALNUM.sub("", item.id)
        if len(id_term) >= min_length:
            terms.setdefault(id_term, None)

        if item.matched_pattern is not None:
            pattern_term = _NON_ALNUM.sub("", strip_wildcards(item.matched_pattern.pattern))
            if len(pattern_term) >= min_length and pattern_term != id_term:
                terms.setdefault(pattern_term, None)
    return list(terms)


def find_related_tasks(
    task_names: Iterable[str],
    search_terms: Iterable[str],
    protected_task_patterns: PatternTable,
) -> List[str]:
    """Return task paths containing any search term, minus protected tasks.

    Args:
        task_names: Full scheduled-task paths (e.g. ``\\Vendor\\UpdaterTask``).
        search_terms: Derived terms; compared case-insensitively as substrings.
        protected_task_patterns: Globs matched against the full task path;
            a match excludes the task regardless of any term.
    """
    lowered_terms = [term.lower() for term in search_terms if term]
    if not lowered_terms:
        return []

    related: List[str] = []
    for name in task_names:
        lowered = name.lower()
        if not any(term in lowered for term in lowered_terms):
            continue
        guard = match(name, protected_task_patterns)
        if guard is not None:
            logger.info(f"  Keeping protected task {name} ({guard.label})")
            continue
        if name not in related:
            related.append(name)
    return related


__all__ = [
    "Confirm",
    "DEFAULT_MIN_TERM_LENGTH",
    "Mode",
    "RemovalPlan",
    "derive_task_search_terms",
    "find_related_tasks",
    "plan",
]
