"""Shape bookkeeping and data movement for reorg, route, shortcut and softmax layers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

from darkconf.tree import Tree

logger = logging.getLogger(__name__)


def _zeros(size: int) -> np.ndarray:
    return np.zeros(size, dtype=np.float32)


def _resized(array: np.ndarray, size: int) -> np.ndarray:
    result = _zeros(size)
    keep = min(size, len(array))
    result[:keep] = array[:keep]
    return result


@dataclass
class LayerShape:
    """Output geometry of a layer as seen by the layers that read from it."""

    out_w: int = 0
    out_h: int = 0
    out_c: int = 0
    outputs: int = 0


@dataclass
class ReorgLayer:
    """Moves spatial blocks into channels (or back, with ``reverse``)."""

    batch: int
    w: int
    h: int
    c: int
    stride: int
    reverse: bool = False
    flatten: bool = False
    extra: int = 0
    output: np.ndarray = field(default_factory=lambda: _zeros(0))
    delta: np.ndarray = field(default_factory=lambda: _zeros(0))

    def __post_init__(self) -> None:
        if self.stride <= 0:
            raise ValueError("reorg stride must be positive")
        self._set_output_shape()
        self.inputs = self.h * self.w * self.c
        if self.extra:
            self.out_w = self.out_h = self.out_c = 0
            self.outputs = self.inputs + self.extra

    def _set_output_shape(self) -> None:
        area = self.stride * self.stride
        if self.reverse:
            self.out_w = self.w * self.stride
            self.out_h = self.h * self.stride
            self.out_c = self.c // area
        else:
            self.out_w = self.w // self.stride
            self.out_h = self.h // self.stride
            self.out_c = self.c * area
        self.outputs = self.out_h * self.out_w * self.out_c

    def resize(self, w: int, h: int) -> None:
        """Change the input size; buffers keep their leading contents."""
        self.w = w
        self.h = h
        self._set_output_shape()
        self.inputs = self.outputs
        size = self.outputs * self.batch
        self.output = _resized(self.output, size)
        self.delta = _resized(self.delta, size)


def make_reorg_layer(
    batch: int,
    w: int,
    h: int,
    c: int,
    stride: int,
    reverse: bool = False,
    flatten: bool = False,
    extra: int = 0,
) -> ReorgLayer:
    layer = ReorgLayer(
        batch=batch, w=w, h=h, c=c, stride=stride,
        reverse=bool(reverse), flatten=bool(flatten), extra=extra,
    )
    if extra:
        logger.info("reorg              %4d   ->  %4d", layer.inputs, layer.outputs)
    else:
        logger.info(
            "reorg              /%2d  %4d x%4d x%4d   ->  %4d x%4d x%4d",
            stride, w, h, c, layer.out_w, layer.out_h, layer.out_c,
        )
    size = layer.outputs * batch
    layer.output = _zeros(size)
    layer.delta = _zeros(size)
    return layer


@dataclass
class RouteLayer:
    """Concatenates the outputs of earlier layers, batch item by batch item."""

    batch: int
    input_layers: list[int]
    input_sizes: list[int]
    out_w: int = 0
    out_h: int = 0
    out_c: int = 0
    output: np.ndarray = field(default_factory=lambda: _zeros(0))
    delta: np.ndarray = field(default_factory=lambda: _zeros(0))

    def __post_init__(self) -> None:
        if len(self.input_layers) != len(self.input_sizes):
            raise ValueError("route layer needs one size per input layer")
        self.outputs = sum(self.input_sizes)
        self.inputs = self.outputs

    @property
    def n(self) -> int:
        return len(self.input_layers)

    def _slices(self):
        offset = 0
        for index, size in zip(self.input_layers, self.input_sizes):
            yield index, offset, size
            offset += size

    def forward(self, outputs: Sequence[np.ndarray]) -> np.ndarray:
        """Copy each input layer's output (indexed by layer number) into this output."""
        table = self.output.reshape(self.batch, self.outputs)
        for index, offset, size in self._slices():
            source = np.asarray(outputs[index], dtype=np.float32)
            table[:, offset:offset + size] = source[: self.batch * size].reshape(
                self.batch, size
            )
        return self.output

    def backward(self, deltas: Sequence[np.ndarray]) -> None:
        """Add this layer's delta back onto each input layer's delta, in place."""
        table = self.delta.reshape(self.batch, self.outputs)
        for index, offset, size in self._slices():
            target = deltas[index]
            view = target[: self.batch * size].reshape(self.batch, size)
            view += table[:, offset:offset + size]

    def resize(self, shapes: Sequence[LayerShape]) -> None:
        """Recompute sizes from the current shapes of the input layers."""
        first = shapes[self.input_layers[0]]
        self.out_w = first.out_w
        self.out_h = first.out_h
        self.out_c = first.out_c
        sizes = [first.outputs]
        for index in self.input_layers[1:]:
            nxt = shapes[index]
            sizes.append(nxt.outputs)
            if nxt.out_w == first.out_w and nxt.out_h == first.out_h:
                self.out_c += nxt.out_c
            else:
                logger.info(
                    "%d %d, %d %d", nxt.out_w, nxt.out_h, first.out_w, first.out_h
                )
                self.out_h = self.out_w = self.out_c = 0
        self.input_sizes = sizes
        self.outputs = sum(sizes)
        self.inputs = self.outputs
        size = self.outputs * self.batch
        self.delta = _resized(self.delta, size)
        self.output = _resized(self.output, size)


def make_route_layer(
    batch: int, input_layers: Sequence[int], input_sizes: Sequence[int]
) -> RouteLayer:
    layer = RouteLayer(
        batch=batch, input_layers=list(input_layers), input_sizes=list(input_sizes)
    )
    logger.info("route  %s", " ".join(str(i) for i in layer.input_layers))
    size = layer.outputs * batch
    layer.delta = _zeros(size)
    layer.output = _zeros(size)
    return layer


@dataclass
class ShortcutLayer:
    """Adds the output of layer ``index`` (``w`` x ``h`` x ``c``) to its input."""

    batch: int
    index: int
    w: int
    h: int
    c: int
    out_w: int
    out_h: int
    out_c: int
    activation: str = "linear"
    output: np.ndarray = field(default_factory=lambda: _zeros(0))
    delta: np.ndarray = field(default_factory=lambda: _zeros(0))

    def __post_init__(self) -> None:
        self.outputs = self.out_w * self.out_h * self.out_c
        self.inputs = self.outputs


def make_shortcut_layer(
    batch: int, index: int, w: int, h: int, c: int, w2: int, h2: int, c2: int
) -> ShortcutLayer:
    """Output keeps the previous layer's shape ``w, h, c``; the source layer is ``w2, h2, c2``."""
    logger.info("Shortcut Layer: %d", index)
    layer = ShortcutLayer(
        batch=batch, index=index, w=w2, h=h2, c=c2, out_w=w, out_h=h, out_c=c
    )
    layer.delta = _zeros(layer.outputs * batch)
    layer.output = _zeros(layer.outputs * batch)
    return layer


@dataclass
class SoftmaxLayer:
    """Softmax over ``groups`` equal slices of each input vector."""

    batch: int
    inputs: int
    groups: int = 1
    temperature: float = 1.0
    softmax_tree: Tree | None = None
    output: np.ndarray = field(default_factory=lambda: _zeros(0))
    delta: np.ndarray = field(default_factory=lambda: _zeros(0))

    def __post_init__(self) -> None:
        if self.groups <= 0 or self.inputs % self.groups != 0:
            raise ValueError("softmax inputs must divide evenly into groups")
        self.outputs = self.inputs

    def backward(self, net_delta: np.ndarray) -> np.ndarray:
        """Add this layer's delta onto the previous layer's delta, in place."""
        count = self.inputs * self.batch
        net_delta[:count] += self.delta[:count]
        return net_delta


def make_softmax_layer(batch: int, inputs: int, groups: int = 1) -> SoftmaxLayer:
    layer = SoftmaxLayer(batch=batch, inputs=inputs, groups=groups)
    logger.info("softmax                                        %4d", inputs)
    layer.output = _zeros(inputs * batch)
    layer.delta = _zeros(inputs * batch)
    return layer