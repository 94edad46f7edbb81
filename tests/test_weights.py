import io
import struct

import numpy as np
import pytest

from darkconf.weights import (
    BatchnormWeights,
    ConnectedWeights,
    ConvolutionalWeights,
    WeightsHeader,
    read_batchnorm,
    read_connected,
    read_convolutional,
    read_convolutional_binary,
    read_header,
    transpose_matrix,
    write_batchnorm,
    write_connected,
    write_convolutional,
    write_convolutional_binary,
    write_header,
)


def test_header_bytes_and_defaults():
    buf = io.BytesIO()
    write_header(buf, WeightsHeader(seen=5))
    assert buf.getvalue() == struct.pack("<4i", 0, 1, 0, 5)


def test_header_round_trip():
    buf = io.BytesIO()
    write_header(buf, WeightsHeader(2, 3, 4, 64))
    buf.seek(0)
    header = read_header(buf)
    assert (header.major, header.minor, header.revision, header.seen) == (2, 3, 4, 64)
    assert header.transpose is False


def test_header_transpose_flag():
    assert WeightsHeader(major=1001).transpose is True
    assert WeightsHeader(minor=1001).transpose is True


def test_header_short_raises():
    with pytest.raises(EOFError):
        read_header(io.BytesIO(b"\x00" * 8))


def test_transpose_matrix():
    result = transpose_matrix([1, 2, 3, 4, 5, 6], 2, 3)
    assert result.tolist() == [1, 4, 2, 5, 3, 6]


def test_transpose_twice_is_identity():
    data = np.arange(12, dtype=np.float32)
    back = transpose_matrix(transpose_matrix(data, 3, 4), 4, 3)
    assert np.array_equal(back, data)


def test_convolutional_round_trip_with_norm():
    n, c, size = 2, 3, 2
    w = ConvolutionalWeights(
        biases=[0.5, -0.25],
        weights=np.arange(n * c * size * size, dtype=np.float32) / 7,
        scales=[1.5, 2.5],
        rolling_mean=[0.1, 0.2],
        rolling_variance=[3.0, 4.0],
    )
    buf = io.BytesIO()
    write_convolutional(buf, w)
    assert len(buf.getvalue()) == 4 * (n * 4 + n * c * size * size)
    buf.seek(0)
    r = read_convolutional(buf, n, c, size, batch_normalize=True)
    assert np.array_equal(r.biases, w.biases)
    assert np.array_equal(r.weights, w.weights)
    assert np.array_equal(r.scales, w.scales)
    assert np.array_equal(r.rolling_mean, w.rolling_mean)
    assert np.array_equal(r.rolling_variance, w.rolling_variance)


def test_convolutional_flipped_transposes():
    n, c, size = 2, 1, 2
    filters = np.arange(8, dtype=np.float32)
    buf = io.BytesIO()
    write_convolutional(buf, ConvolutionalWeights([0, 0], filters))
    buf.seek(0)
    r = read_convolutional(buf, n, c, size, flipped=True)
    assert np.array_equal(r.weights, transpose_matrix(filters, c * size * size, n))


def test_convolutional_dontloadscales_skips_stats():
    n, c, size = 1, 1, 1
    buf = io.BytesIO()
    write_convolutional(buf, ConvolutionalWeights([2.0], [3.0]))
    buf.seek(0)
    r = read_convolutional(buf, n, c, size, batch_normalize=True, dontloadscales=True)
    assert r.scales is None
    assert r.weights.tolist() == [3.0]


def test_convolutional_short_raises():
    buf = io.BytesIO(struct.pack("<f", 1.0))
    with pytest.raises(EOFError):
        read_convolutional(buf, 1, 1, 3)


def test_binary_bytes():
    w = ConvolutionalWeights([0.0], [0.5] + [-0.5] * 7)
    buf = io.BytesIO()
    write_convolutional_binary(buf, w)
    assert buf.getvalue() == struct.pack("<f", 0.0) + struct.pack("<f", 0.5) + bytes([1])


def test_binary_round_trip():
    n, c, size = 2, 4, 2
    rng = np.random.default_rng(1)
    signs = rng.choice([-1.0, 1.0], size=(n, c * size * size))
    filters = (signs * np.array([[0.75], [0.125]])).astype(np.float32).ravel()
    w = ConvolutionalWeights([1.0, 2.0], filters)
    buf = io.BytesIO()
    write_convolutional_binary(buf, w)
    buf.seek(0)
    r = read_convolutional_binary(buf, n, c, size)
    assert np.array_equal(r.weights, filters)
    assert np.array_equal(r.biases, w.biases)


def test_binary_drops_partial_byte():
    filters = [0.5] * 9
    buf = io.BytesIO()
    write_convolutional_binary(buf, ConvolutionalWeights([0.0], filters))
    buf.seek(0)
    r = read_convolutional_binary(buf, 1, 1, 3)
    assert r.weights.tolist()[:8] == [0.5] * 8
    assert r.weights[8] == 0.0


def test_connected_round_trip():
    inputs, outputs = 3, 2
    w = ConnectedWeights(
        biases=[1.0, 2.0],
        weights=np.arange(6, dtype=np.float32),
        scales=[0.5, 0.5],
        rolling_mean=[0.0, 1.0],
        rolling_variance=[2.0, 3.0],
    )
    buf = io.BytesIO()
    write_connected(buf, w)
    buf.seek(0)
    r = read_connected(buf, inputs, outputs, batch_normalize=True)
    assert np.array_equal(r.weights, w.weights)
    assert np.array_equal(r.rolling_variance, w.rolling_variance)
    assert buf.read() == b""


def test_connected_transpose():
    inputs, outputs = 3, 2
    stored = np.arange(6, dtype=np.float32)
    buf = io.BytesIO()
    write_connected(buf, ConnectedWeights([0.0, 0.0], stored))
    buf.seek(0)
    r = read_connected(buf, inputs, outputs, transpose=True)
    assert np.array_equal(r.weights, transpose_matrix(stored, inputs, outputs))


def test_connected_dontloadscales_leaves_bytes():
    w = ConnectedWeights([1.0], [2.0], [3.0], [4.0], [5.0])
    buf = io.BytesIO()
    write_connected(buf, w)
    buf.seek(0)
    r = read_connected(buf, 1, 1, batch_normalize=True, dontloadscales=True)
    assert r.scales is None
    assert buf.tell() == 8


def test_batchnorm_round_trip():
    w = BatchnormWeights([1.0, 2.0], [3.0, 4.0], [5.0, 6.0])
    buf = io.BytesIO()
    write_batchnorm(buf, w)
    buf.seek(0)
    r = read_batchnorm(buf, 2)
    assert r.scales.tolist() == [1.0, 2.0]
    assert r.rolling_mean.tolist() == [3.0, 4.0]
    assert r.rolling_variance.tolist() == [5.0, 6.0]


def test_batchnorm_short_raises():
    with pytest.raises(EOFError):
        read_batchnorm(io.BytesIO(b"\x00" * 12), 2)