"""Region (detection) layer: layout of predictions, box decoding and class deltas."""

from __future__ import annotations

import logging
import math
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass, field, replace

import numpy as np

from darkconf.tree import Tree

logger = logging.getLogger(__name__)

MAX_TRUTH_BOXES = 30


@dataclass
class Box:
    x: float = 0.0
    y: float = 0.0
    w: float = 0.0
    h: float = 0.0


def _zeros(size: int) -> np.ndarray:
    return np.zeros(size, dtype=np.float32)


@dataclass
class RegionLayer:
    """Predictions laid out per anchor as coords, objectness, then class scores."""

    batch: int
    w: int
    h: int
    n: int
    classes: int
    coords: int
    biases: np.ndarray = field(default_factory=lambda: _zeros(0))
    bias_updates: np.ndarray = field(default_factory=lambda: _zeros(0))
    output: np.ndarray = field(default_factory=lambda: _zeros(0))
    delta: np.ndarray = field(default_factory=lambda: _zeros(0))
    cost: float = 0.0
    log: int = 0
    sqrt: int = 0
    softmax: int = 0
    max_boxes: int = 30
    jitter: float = 0.2
    rescore: int = 0
    thresh: float = 0.5
    classfix: int = 0
    absolute: int = 0
    random: int = 0
    coord_scale: float = 1.0
    object_scale: float = 1.0
    noobject_scale: float = 1.0
    class_scale: float = 1.0
    bias_match: int = 0
    softmax_tree: Tree | None = None
    map: list[int] | None = None

    def __post_init__(self) -> None:
        self.c = self.n * (self.classes + self.coords + 1)
        self.out_w = self.w
        self.out_h = self.h
        self.out_c = self.c
        self.outputs = self.h * self.w * self.c
        self.inputs = self.outputs
        self.truths = MAX_TRUTH_BOXES * 5

    def resize(self, w: int, h: int) -> None:
        """Change the grid size; output buffers keep their leading contents."""
        self.w = w
        self.h = h
        self.outputs = h * w * self.n * (self.classes + self.coords + 1)
        self.inputs = self.outputs
        size = self.batch * self.outputs
        self.output = _resized(self.output, size)
        self.delta = _resized(self.delta, size)

    def entry_index(self, batch: int, location: int, entry: int) -> int:
        """Flat index of ``entry`` for anchor/cell ``location`` in batch item ``batch``."""
        area = self.w * self.h
        anchor, loc = divmod(location, area)
        return (
            batch * self.outputs
            + anchor * area * (self.coords + self.classes + 1)
            + entry * area
            + loc
        )

    def _average_flipped(self) -> None:
        outputs = self.outputs
        flip = self.output[outputs : 2 * outputs]
        entries = self.classes + 5
        span = entries * self.n * self.h * self.w
        if span > outputs:
            raise ValueError("flipped averaging needs coords == 4")
        view = flip[:span].reshape(entries, self.n, self.h, self.w)
        half = self.w // 2
        if half:
            view[...] = view[..., ::-1].copy()
            columns = np.r_[0:half, self.w - half : self.w]
            first = view[0]
            first[..., columns] *= -1
        self.output[:outputs] = (self.output[:outputs] + flip) / 2

    def get_region_boxes(
        self,
        w: int,
        h: int,
        netw: int,
        neth: int,
        thresh: float,
        only_objectness: bool = False,
        class_map: Sequence[int] | None = None,
        tree_thresh: float = 0.5,
        relative: bool = True,
    ) -> tuple[np.ndarray, list[Box]]:
        """Decode batch item 0 into boxes and per-class probabilities.

        Each probability row holds the class scores followed, at column
        ``classes``, by the best score (or the objectness with a tree).
        """
        if self.batch == 2:
            self._average_flipped()
        predictions = self.output
        area = self.w * self.h
        mapped = list(class_map[:200]) if class_map is not None else None
        width = self.classes + 1
        if mapped:
            width = max(width, len(mapped))
        total = area * self.n
        probs = np.zeros((total, width), dtype=np.float32)
        boxes: list[Box] = [Box()] * total

        for i in range(area):
            row, col = divmod(i, self.w)
            for anchor in range(self.n):
                index = anchor * area + i
                location = anchor * area + i
                obj_index = self.entry_index(0, location, 4)
                box_index = self.entry_index(0, location, 0)
                scale = float(predictions[obj_index])
                boxes[index] = get_region_box(
                    predictions, self.biases, anchor, box_index,
                    col, row, self.w, self.h, area,
                )
                class_index = self.entry_index(0, location, 5)
                if self.softmax_tree is not None:
                    self.softmax_tree.hierarchy_predictions(
                        predictions[class_index:], self.classes, False, area
                    )
                    if mapped is not None:
                        for j, target in enumerate(mapped):
                            idx = self.entry_index(0, location, 5 + target)
                            prob = scale * float(predictions[idx])
                            probs[index, j] = prob if prob > thresh else 0
                    else:
                        j = self.softmax_tree.top_prediction(
                            predictions[class_index:], tree_thresh, area
                        )
                        if j >= 0:
                            probs[index, j] = scale if scale > thresh else 0
                        probs[index, self.classes] = scale
                else:
                    best = 0.0
                    for j in range(self.classes):
                        idx = self.entry_index(0, location, 5 + j)
                        prob = scale * float(predictions[idx])
                        probs[index, j] = prob if prob > thresh else 0
                        best = max(best, prob)
                    probs[index, self.classes] = best
                if only_objectness:
                    probs[index, 0] = scale

        boxes = correct_region_boxes(boxes, w, h, netw, neth, relative)
        return probs, boxes

    def zero_objectness(self) -> None:
        """Clear the objectness score of every anchor in batch item 0."""
        area = self.w * self.h
        for i in range(area):
            for anchor in range(self.n):
                self.output[self.entry_index(0, anchor * area + i, 4)] = 0


def _resized(array: np.ndarray, size: int) -> np.ndarray:
    result = _zeros(size)
    keep = min(size, len(array))
    result[:keep] = array[:keep]
    return result


def make_region_layer(
    batch: int, w: int, h: int, n: int, classes: int, coords: int
) -> RegionLayer:
    """Create a region layer with all anchor biases set to 0.5."""
    layer = RegionLayer(batch=batch, w=w, h=h, n=n, classes=classes, coords=coords)
    layer.biases = np.full(n * 2, 0.5, dtype=np.float32)
    layer.bias_updates = _zeros(n * 2)
    layer.output = _zeros(batch * layer.outputs)
    layer.delta = _zeros(batch * layer.outputs)
    logger.info("detection")
    return layer


def get_region_box(
    x: Sequence[float],
    biases: Sequence[float],
    n: int,
    index: int,
    i: int,
    j: int,
    w: int,
    h: int,
    stride: int,
) -> Box:
    """Decode the box for anchor ``n`` at grid cell (``i``, ``j``)."""
    return Box(
        x=(i + float(x[index])) / w,
        y=(j + float(x[index + stride])) / h,
        w=math.exp(float(x[index + 2 * stride])) * float(biases[2 * n]) / w,
        h=math.exp(float(x[index + 3 * stride])) * float(biases[2 * n + 1]) / h,
    )


def delta_region_class(
    output: Sequence[float],
    delta: MutableSequence[float],
    index: int,
    cls: int,
    classes: int,
    hier: Tree | None,
    scale: float,
    stride: int,
) -> float:
    """Write class deltas toward ``cls``; return its predicted probability."""
    if hier is not None:
        pred = 1.0
        while cls >= 0:
            pred *= float(output[index + stride * cls])
            g = hier.group[cls]
            offset = hier.group_offset[g]
            for k in range(offset, offset + hier.group_size[g]):
                pos = index + stride * k
                delta[pos] = scale * (0 - output[pos])
            pos = index + stride * cls
            delta[pos] = scale * (1 - output[pos])
            cls = hier.parent[cls]
        return pred

    found = 0.0
    for k in range(classes):
        pos = index + stride * k
        target = 1 if k == cls else 0
        delta[pos] = scale * (target - output[pos])
        if k == cls:
            found += float(output[pos])
    return found


def logit(x: float) -> float:
    return math.log(x / (1.0 - x))


def correct_region_boxes(
    boxes: Sequence[Box], w: int, h: int, netw: int, neth: int, relative: bool
) -> list[Box]:
    """Undo letterboxing of an image of size ``w`` x ``h`` into a ``netw`` x ``neth`` input."""
    if netw / w < neth / h:
        new_w = netw
        new_h = (h * netw) // w
    else:
        new_h = neth
        new_w = (w * neth) // h
    corrected = []
    for b in boxes:
        x = (b.x - (netw - new_w) / 2.0 / netw) / (new_w / netw)
        y = (b.y - (neth - new_h) / 2.0 / neth) / (new_h / neth)
        bw = b.w * netw / new_w
        bh = b.h * neth / new_h
        if not relative:
            x *= w
            bw *= w
            y *= h
            bh *= h
        corrected.append(replace(b, x=x, y=y, w=bw, h=bh))
    return corrected