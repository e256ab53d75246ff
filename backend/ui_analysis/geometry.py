"""
Bounding-box helpers shared by the detectors and the merger.
"""

from typing import Callable, List, Optional, Sequence, TypeVar

from ui_analysis.models import BoundingBox

T = TypeVar("T")


def overlap_ratio(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection area divided by the smaller of the two box areas.

    A small box fully inside a large one scores 1.0.

    Args:
        a: First box
        b: Second box

    Returns:
        Overlap ratio in [0, 1]; 0 when the boxes do not intersect
    """
    x1 = max(a.x, b.x)
    y1 = max(a.y, b.y)
    x2 = min(a.right, b.right)
    y2 = min(a.bottom, b.bottom)

    if x2 <= x1 or y2 <= y1:
        return 0.0

    smaller = min(a.area, b.area)
    if smaller <= 0:
        return 0.0
    return (x2 - x1) * (y2 - y1) / smaller


def horizontal_overlap(a: BoundingBox, b: BoundingBox) -> float:
    """Overlap of the x-extents divided by the narrower width."""
    x1 = max(a.x, b.x)
    x2 = min(a.right, b.right)
    if x2 <= x1:
        return 0.0

    narrower = min(a.width, b.width)
    if narrower <= 0:
        return 0.0
    return (x2 - x1) / narrower


def remove_duplicates(
    items: Sequence[T],
    bounds_of: Callable[[T], Optional[BoundingBox]],
    threshold: float = 0.7,
) -> List[T]:
    """
    Drop items whose box overlaps an already-kept item's box by more than ``threshold``.

    Items are visited in order, so earlier items win. Items without bounds are
    always kept.

    Args:
        items: Candidates in priority order
        bounds_of: Accessor returning an item's bounding box (or None)
        threshold: Overlap ratio above which two items are duplicates

    Returns:
        The surviving items, in their original order
    """
    kept: List[int] = []
    for index, item in enumerate(items):
        box = bounds_of(item)
        if box is not None:
            duplicate = False
            for kept_index in kept:
                other = bounds_of(items[kept_index])
                if other is not None and overlap_ratio(box, other) > threshold:
                    duplicate = True
                    break
            if duplicate:
                continue
        kept.append(index)

    return [items[i] for i in kept]
