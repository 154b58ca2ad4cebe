"""
Rectangle hole finder for palette images.

Unlike a shelf packer, the hole finder works from the set of rectangles
already on the canvas, so layouts restored from a previous session can
keep growing without being repacked.
"""

import math
from typing import Iterable, List, Optional, Tuple

Rect = Tuple[int, int, int, int]  # x, y, width, height


def next_power_of_2(n: int) -> int:
    """Return the next power of 2 >= n."""
    if n <= 0:
        return 1
    return 2 ** math.ceil(math.log2(n))


def nearest_power_of_2(n: int) -> int:
    """Return the power of 2 closest to n (ties round up)."""
    if n <= 1:
        return 1
    upper = next_power_of_2(n)
    lower = upper // 2
    return lower if n - lower < upper - n else upper


def _overlaps(a: Rect, b: Rect) -> bool:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    return ax < bx + bw and bx < ax + aw and ay < by + bh and by < ay + ah


def find_hole(placed: Iterable[Rect], width: int, height: int, w: int, h: int) -> Optional[Tuple[int, int]]:
    """
    Find the top-most, then left-most free spot for a w x h rectangle.

    Candidate corners are the origin plus the right and bottom edges of
    every rectangle already placed.

    Args:
        placed: Rectangles already on the canvas
        width: Canvas width
        height: Canvas height
        w: Width of the rectangle to place
        h: Height of the rectangle to place

    Returns:
        (x, y) of the hole, or None if the rectangle does not fit
    """
    if w > width or h > height:
        return None

    placed = list(placed)
    xs = {0} | {x + pw for x, _, pw, _ in placed}
    ys = {0} | {y + ph for _, y, _, ph in placed}

    for y in sorted(ys):
        if y + h > height:
            break
        for x in sorted(xs):
            if x + w > width:
                break
            candidate = (x, y, w, h)
            if not any(_overlaps(candidate, r) for r in placed):
                return x, y
    return None


def bounding_size(placed: List[Rect]) -> Tuple[int, int]:
    """Extent (width, height) covered by the placed rectangles."""
    if not placed:
        return 0, 0
    return (
        max(x + w for x, _, w, _ in placed),
        max(y + h for _, y, _, h in placed),
    )
