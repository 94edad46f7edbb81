import numpy as np
import pytest

from darkconf.region import (
    Box,
    correct_region_boxes,
    delta_region_class,
    get_region_box,
    logit,
    make_region_layer,
)
from darkconf.tree import read_tree


def _tree(tmp_path, text):
    path = tmp_path / "tree.txt"
    path.write_text(text)
    return read_tree(path)


def test_make_region_layer_shape():
    layer = make_region_layer(2, 3, 4, 2, 3, 4)
    assert layer.outputs == layer.w * layer.h * layer.c
    assert layer.inputs == layer.outputs
    assert layer.truths == 150
    assert len(layer.output) == layer.batch * layer.outputs
    assert len(layer.delta) == len(layer.output)
    assert np.all(layer.biases == 0.5)
    assert len(layer.biases) == 2 * layer.n


def test_entry_index_covers_each_batch_once():
    layer = make_region_layer(2, 3, 2, 2, 3, 4)
    entries = layer.coords + layer.classes + 1
    seen = {
        layer.entry_index(0, loc, e)
        for loc in range(layer.n * layer.w * layer.h)
        for e in range(entries)
    }
    assert seen == set(range(layer.outputs))
    assert layer.entry_index(1, 5, 2) - layer.entry_index(0, 5, 2) == layer.outputs


def test_resize_keeps_prefix():
    layer = make_region_layer(1, 2, 2, 1, 2, 4)
    layer.output[:] = np.arange(layer.outputs)
    old = layer.output.copy()
    layer.resize(3, 2)
    assert layer.outputs == layer.w * layer.h * layer.c
    assert len(layer.output) == layer.outputs
    np.testing.assert_array_equal(layer.output[: len(old)], old)
    assert layer.out_w == 2


def test_get_region_box_identity():
    box = get_region_box([0.0, 0.0, 0.0, 0.0], [1.0, 1.0], 0, 0, 0, 0, 1, 1, 1)
    assert box == Box(0.0, 0.0, 1.0, 1.0)


def test_get_region_box_uses_stride_and_cell():
    x = [0.25, 9.0, 0.5, 9.0, 0.0, 9.0, 0.0, 9.0]
    box = get_region_box(x, [2.0, 4.0], 0, 0, 1, 2, 4, 4, 2)
    assert box.x == pytest.approx((1 + 0.25) / 4)
    assert box.y == pytest.approx((2 + 0.5) / 4)
    assert box.w == pytest.approx(2.0 / 4)
    assert box.h == pytest.approx(4.0 / 4)


def test_logit_inverts_logistic():
    assert logit(0.5) == 0.0
    assert logit(1 / (1 + np.exp(-2.0))) == pytest.approx(2.0)


def test_correct_region_boxes_identity_and_absolute():
    boxes = [Box(0.3, 0.6, 0.2, 0.1)]
    same = correct_region_boxes(boxes, 10, 10, 10, 10, True)
    assert same[0].x == pytest.approx(0.3)
    assert same[0].h == pytest.approx(0.1)
    absolute = correct_region_boxes(boxes, 10, 10, 10, 10, False)
    assert absolute[0].x == pytest.approx(same[0].x * 10)
    assert absolute[0].w == pytest.approx(same[0].w * 10)


def test_correct_region_boxes_letterbox_center():
    result = correct_region_boxes([Box(0.5, 0.5, 0.5, 0.5)], 200, 100, 100, 100, True)
    assert result[0].x == pytest.approx(0.5)
    assert result[0].y == pytest.approx(0.5)
    assert result[0].w == pytest.approx(0.5)
    assert result[0].h == pytest.approx(1.0)


def test_delta_region_class_flat():
    output = np.array([0.2, 0.7, 0.1])
    delta = np.zeros(3)
    found = delta_region_class(output, delta, 0, 1, 3, None, 1.0, 1)
    assert found == pytest.approx(output[1])
    assert delta[1] > 0
    assert delta[0] < 0 and delta[2] < 0


def test_delta_region_class_tree(tmp_path):
    tree = _tree(tmp_path, "root -1\na 0\nb 0\nc 1\nd 1\n")
    output = np.array([0.9, 0.6, 0.4, 0.3, 0.7])
    delta = np.zeros(5)
    found = delta_region_class(output, delta, 0, 2, 5, tree, 1.0, 1)
    assert found == pytest.approx(tree.hierarchy_probability(output, 2, 1))
    assert delta[0] > 0 and delta[2] > 0 and delta[1] < 0
    assert delta[3] == 0 and delta[4] == 0


def _filled_layer(objectness, cls0, cls1, classes=2):
    layer = make_region_layer(1, 2, 2, 1, classes, 4)
    for loc in range(layer.w * layer.h):
        layer.output[layer.entry_index(0, loc, 4)] = objectness
        layer.output[layer.entry_index(0, loc, 5)] = cls0
        layer.output[layer.entry_index(0, loc, 6)] = cls1
    return layer


def test_get_region_boxes_flat_probabilities():
    layer = _filled_layer(1.0, 0.5, 0.25)
    probs, boxes = layer.get_region_boxes(2, 2, 2, 2, 0.3, False, None, 0.5, True)
    assert probs.shape == (4, 3)
    np.testing.assert_allclose(probs[:, 0], 0.5)
    np.testing.assert_allclose(probs[:, 1], 0.0)
    np.testing.assert_allclose(probs[:, 2], 0.5)
    assert len(boxes) == 4
    assert boxes[1].x > boxes[0].x
    assert boxes[2].y > boxes[0].y
    assert len({b.w for b in boxes}) == 1


def test_get_region_boxes_only_objectness_and_absolute():
    layer = _filled_layer(0.75, 0.5, 0.25)
    probs, rel = layer.get_region_boxes(2, 2, 2, 2, 0.0, True, None, 0.5, True)
    np.testing.assert_allclose(probs[:, 0], 0.75)
    layer2 = _filled_layer(0.75, 0.5, 0.25)
    _, absolute = layer2.get_region_boxes(2, 2, 2, 2, 0.0, True, None, 0.5, False)
    for a, r in zip(absolute, rel):
        assert a.x == pytest.approx(r.x * 2)
        assert a.h == pytest.approx(r.h * 2)


def test_get_region_boxes_with_tree(tmp_path):
    layer = _filled_layer(1.0, 0.3, 0.7)
    layer.softmax_tree = _tree(tmp_path, "x -1\ny -1\n")
    probs, _ = layer.get_region_boxes(2, 2, 2, 2, 0.5, False, None, 0.5, True)
    np.testing.assert_allclose(probs[:, 1], 1.0)
    np.testing.assert_allclose(probs[:, 0], 0.0)
    np.testing.assert_allclose(probs[:, 2], 1.0)


def test_get_region_boxes_with_tree_and_map(tmp_path):
    layer = _filled_layer(1.0, 0.3, 0.7)
    layer.softmax_tree = _tree(tmp_path, "x -1\ny -1\n")
    probs, _ = layer.get_region_boxes(2, 2, 2, 2, 0.1, False, [1, 0], 0.5, True)
    np.testing.assert_allclose(probs[:, 0], np.float32(0.7))
    np.testing.assert_allclose(probs[:, 1], np.float32(0.3))


def test_get_region_boxes_averages_batch_of_two():
    layer = make_region_layer(2, 1, 1, 1, 2, 4)
    layer.output[: layer.outputs] = 1.0
    layer.output[layer.outputs :] = 3.0
    layer.get_region_boxes(1, 1, 1, 1, 0.0, False, None, 0.5, True)
    np.testing.assert_allclose(layer.output[: layer.outputs], 2.0)


def test_zero_objectness():
    layer = make_region_layer(1, 3, 2, 2, 2, 4)
    layer.output[:] = 1.0
    layer.zero_objectness()
    area = layer.w * layer.h
    zeros = [layer.entry_index(0, loc, 4) for loc in range(layer.n * area)]
    assert np.all(layer.output[zeros] == 0)
    assert int(np.sum(layer.output == 0)) == layer.n * area