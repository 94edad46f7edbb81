# darkconf

Helpers for working with darknet-style neural networks in Python:

- read and write binary `.weights` files: the header and the convolutional,
  connected and batch-normalisation blocks, including the packed binary form
  of convolutional filters (`darkconf.weights`),
- work out the geometry of reorg, route, shortcut and softmax layers, and move
  data through route and softmax layers (`darkconf.layers`),
- decode region-layer (YOLOv2-style) predictions into boxes and class
  probabilities (`darkconf.region`),
- load word trees used for hierarchical softmax (`darkconf.tree`),
- prepare one-hot training batches for character and token RNNs
  (`darkconf.rnn_data`),
- small helpers for strings, number lists, random draws and argument lists
  (`darkconf.utils`).

## Installation

```
pip install .
```

Tests are run with the `test` extra:

```
pip install .[test]
pytest
```

## Weight files

A weights file starts with a header of four little-endian 32-bit integers
(major, minor, revision, images seen), followed by per-layer blocks of
little-endian float32 values.

```python
import io
from darkconf.weights import (
    WeightsHeader, ConvolutionalWeights,
    write_header, write_convolutional, read_header, read_convolutional,
)

buf = io.BytesIO()
write_header(buf, WeightsHeader(seen=1000))
write_convolutional(buf, ConvolutionalWeights(biases=[0.1, 0.2], weights=[1.0, -1.0]))

buf.seek(0)
header = read_header(buf)             # WeightsHeader(major=0, minor=1, revision=0, seen=1000)
conv = read_convolutional(buf, 2, 1, 1)
```

`WeightsHeader.transpose` tells whether connected weights in the file are
stored transposed; pass it on as the `transpose` argument of `read_connected`.
`read_convolutional` and `read_connected` skip the batch-norm statistics when
`dontloadscales` is set. Short reads raise `EOFError`.

`write_convolutional_binary` stores one magnitude per filter and one sign bit
per weight; only whole bytes of bits are written, and
`read_convolutional_binary` fills the weights that were not stored with 0.

## Layer geometry

```python
from darkconf.layers import make_reorg_layer, make_route_layer, make_softmax_layer

reorg = make_reorg_layer(1, 26, 26, 64, 2)
print(reorg.out_w, reorg.out_h, reorg.out_c)   # 13 13 256

route = make_route_layer(1, [0, 1], [4, 2])
route.forward([a, b])                          # concatenates a and b per batch item
```

`RouteLayer.resize` takes a `LayerShape` for each layer of the network and
recomputes the output size; when the inputs differ in width or height the
output width, height and channels become 0. `SoftmaxLayer` requires the inputs
to divide evenly into groups and raises `ValueError` otherwise.

## Region predictions

```python
from darkconf.region import make_region_layer

layer = make_region_layer(1, 13, 13, 5, 80, 4)
# fill layer.output with the network's predictions, then:
probs, boxes = layer.get_region_boxes(416, 416, 416, 416, 0.24)
```

`probs` has one row per anchor and cell, holding the class probabilities and,
in column `classes`, the best score (or the objectness when a word tree is
attached as `softmax_tree`). `boxes` is a list of `Box` values corrected for
letterboxing by `correct_region_boxes`.

## Word trees

```python
from darkconf.tree import read_tree

tree = read_tree("9k.tree")         # lines of "name parent_index"
best = tree.top_prediction(scores, 0.5, 1)
```

## RNN training data

```python
from darkconf.rnn_data import get_rnn_data

offsets = [0, 100]
x, y = get_rnn_data(b"some text ...", offsets, 256, batch=2, steps=10)
```

Row `j * batch + i` of `x` is the one-hot character of stream `i` at step
`j`, and the same row of `y` is the character that follows it. `offsets` is
advanced in place. Characters outside the range raise `ValueError`.

## What this package does not do

It does not read `.cfg` network descriptions or `.data` option files, does not
build, train or run networks, and has no command-line program. It works on
weight files, layer shapes and prediction arrays that you supply.