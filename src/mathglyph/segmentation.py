"""
Connected-component segmentation over a binary glyph mask.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Tuple

import cv2
import numpy as np

from .constants import MIN_COMPONENT_AREA
from .preprocess import BinaryMask

Box = Tuple[int, int, int, int]


@dataclass(frozen=True)
class Component:
    """A maximal 4-connected set of foreground pixels."""

    id: int
    x: int
    y: int
    w: int
    h: int
    pixels: FrozenSet[int]
    area: int
    perimeter: int

    @property
    def bbox(self) -> Box:
        return (self.x, self.y, self.w, self.h)


class ComponentSegmenter:
    """Label foreground regions with an explicit-stack flood fill."""

    def __init__(self, min_area: int = MIN_COMPONENT_AREA) -> None:
        self.min_area = int(min_area)

    def segment(self, mask: BinaryMask) -> List[Component]:
        """
        Return surviving components in raster order of their first pixel.

        Ids increase monotonically with discovery, including components that
        are later dropped as noise, so ids are stable for a given mask.
        """
        width, height = mask.width, mask.height
        flat = mask.bits.ravel()
        seeds = np.flatnonzero(flat).tolist()
        if not seeds:
            return []

        foreground = flat.tolist()
        labels = [0] * len(foreground)
        components: List[Component] = []
        next_id = 1

        for seed in seeds:
            if labels[seed]:
                continue
            label = next_id
            next_id += 1
            labels[seed] = label
            stack = [seed]
            pixels: List[int] = []
            min_x = max_x = seed % width
            min_y = max_y = seed // width
            perimeter = 0

            while stack:
                p = stack.pop()
                pixels.append(p)
                px = p % width
                py = p // width
                if px < min_x:
                    min_x = px
                elif px > max_x:
                    max_x = px
                if py < min_y:
                    min_y = py
                elif py > max_y:
                    max_y = py

                on_boundary = False
                if px > 0:
                    n = p - 1
                    if foreground[n]:
                        if not labels[n]:
                            labels[n] = label
                            stack.append(n)
                    else:
                        on_boundary = True
                else:
                    on_boundary = True
                if px < width - 1:
                    n = p + 1
                    if foreground[n]:
                        if not labels[n]:
                            labels[n] = label
                            stack.append(n)
                    else:
                        on_boundary = True
                else:
                    on_boundary = True
                if py > 0:
                    n = p - width
                    if foreground[n]:
                        if not labels[n]:
                            labels[n] = label
                            stack.append(n)
                    else:
                        on_boundary = True
                else:
                    on_boundary = True
                if py < height - 1:
                    n = p + width
                    if foreground[n]:
                        if not labels[n]:
                            labels[n] = label
                            stack.append(n)
                    else:
                        on_boundary = True
                else:
                    on_boundary = True
                if on_boundary:
                    perimeter += 1

            area = len(pixels)
            if area < self.min_area:
                continue
            components.append(
                Component(
                    id=label,
                    x=min_x,
                    y=min_y,
                    w=max_x - min_x + 1,
                    h=max_y - min_y + 1,
                    pixels=frozenset(pixels),
                    area=area,
                    perimeter=perimeter,
                )
            )
        return components

    def visualise(self, mask: BinaryMask, boxes: Iterable[Box] | None = None) -> np.ndarray:
        """Draw numbered bounding boxes over the mask for inspection."""
        if boxes is None:
            boxes = [component.bbox for component in self.segment(mask)]
        overlay = cv2.cvtColor(mask.to_image(), cv2.COLOR_GRAY2BGR)
        for idx, (x, y, w, h) in enumerate(boxes):
            cv2.rectangle(overlay, (x, y), (x + w - 1, y + h - 1), (0, 255, 0), 1)
            cv2.putText(
                overlay,
                str(idx + 1),
                (x, max(0, y - 4)),
                cv2.FONT_HERSHEY_SIMPLEX,
                0.4,
                (0, 128, 255),
                1,
                cv2.LINE_AA,
            )
        return overlay



def component_patch(component: Component, width: int, size: int = 28) -> np.ndarray:
    """
    Render only this component's pixels as a ``size`` x ``size`` model input.

    ``width`` is the width of the mask the component came from. Other ink
    inside the bounding box is left out. The longer side is scaled to
    ``size - 4`` and the glyph is centred.
    """
    patch = np.zeros((component.h, component.w), dtype=np.uint8)
    if component.pixels:
        flat = np.fromiter(component.pixels, dtype=np.int64, count=len(component.pixels))
        patch[flat // width - component.y, flat % width - component.x] = 255
    scale = (size - 4) / max(component.h, component.w)
    rows = max(1, int(round(component.h * scale)))
    cols = max(1, int(round(component.w * scale)))
    resized = cv2.resize(patch, (cols, rows), interpolation=cv2.INTER_AREA)
    canvas = np.zeros((size, size), dtype=np.uint8)
    top = (size - rows) // 2
    left = (size - cols) // 2
    canvas[top : top + rows, left : left + cols] = resized
    return canvas
