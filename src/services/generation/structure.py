"""Map each slide to the layout (template) it is generated against."""

from __future__ import annotations

from collections.abc import Sequence


def build_structure_mapping(
    slide_count: int,
    layout_count: int,
    *,
    ordered: bool = False,
    saved: Sequence[int] | None = None,
) -> list[int]:
    """Return a layout index for each of ``slide_count`` slides.

    A saved structure wins, each entry clamped into the layout range; slides
    beyond its end fall through to the default mapping. Ordered layouts are
    used in sequence with the last one repeating, unordered layouts cycle.
    With no layouts every slide maps to 0.
    """
    if layout_count <= 0:
        return [0] * slide_count

    last = layout_count - 1
    mapping: list[int] = []
    for i in range(slide_count):
        if saved is not None and i < len(saved):
            mapping.append(max(0, min(int(saved[i]), last)))
        elif ordered:
            mapping.append(min(i, last))
        else:
            mapping.append(i % layout_count)
    return mapping
