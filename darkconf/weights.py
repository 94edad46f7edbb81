"""Binary weight files: header, and per-layer blocks of little-endian float32 values."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

import numpy as np

_FLOAT = np.dtype("<f4")
_HEADER = struct.Struct("<4i")


def _as_floats(values: object) -> np.ndarray:
    return np.asarray(values, dtype=np.float32).ravel()


def _optional_floats(values: object | None) -> np.ndarray | None:
    return None if values is None else _as_floats(values)


def _read_floats(fp: BinaryIO, count: int) -> np.ndarray:
    size = count * _FLOAT.itemsize
    data = fp.read(size)
    if len(data) != size:
        raise EOFError(f"expected {count} floats, got {len(data) // _FLOAT.itemsize}")
    return np.frombuffer(data, dtype=_FLOAT).astype(np.float32)


def _write_floats(fp: BinaryIO, values: np.ndarray) -> None:
    fp.write(np.asarray(values, dtype=_FLOAT).tobytes())


def _read_exact(fp: BinaryIO, size: int) -> bytes:
    data = fp.read(size)
    if len(data) != size:
        raise EOFError(f"expected {size} bytes, got {len(data)}")
    return data


@dataclass
class WeightsHeader:
    """Version numbers and the count of images the network has seen."""

    major: int = 0
    minor: int = 1
    revision: int = 0
    seen: int = 0

    @property
    def transpose(self) -> bool:
        """Whether connected weights in the file are stored transposed."""
        return self.major > 1000 or self.minor > 1000


def read_header(fp: BinaryIO) -> WeightsHeader:
    major, minor, revision, seen = _HEADER.unpack(_read_exact(fp, _HEADER.size))
    return WeightsHeader(major, minor, revision, seen)


def write_header(fp: BinaryIO, header: WeightsHeader) -> None:
    fp.write(_HEADER.pack(header.major, header.minor, header.revision, header.seen))


def transpose_matrix(a: object, rows: int, cols: int) -> np.ndarray:
    """Transpose a flat row-major ``rows`` x ``cols`` matrix into a flat ``cols`` x ``rows`` one."""
    return _as_floats(a).reshape(rows, cols).T.ravel().copy()


@dataclass(eq=False)
class ConvolutionalWeights:
    """Biases, optional batch-norm statistics and filter weights of ``n`` filters."""

    biases: np.ndarray
    weights: np.ndarray
    scales: np.ndarray | None = None
    rolling_mean: np.ndarray | None = None
    rolling_variance: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.biases = _as_floats(self.biases)
        self.weights = _as_floats(self.weights)
        self.scales = _optional_floats(self.scales)
        self.rolling_mean = _optional_floats(self.rolling_mean)
        self.rolling_variance = _optional_floats(self.rolling_variance)

    @property
    def n(self) -> int:
        return len(self.biases)

    @property
    def batch_normalize(self) -> bool:
        return self.scales is not None


@dataclass(eq=False)
class ConnectedWeights:
    """Biases, an ``outputs`` x ``inputs`` weight matrix and optional batch-norm statistics."""

    biases: np.ndarray
    weights: np.ndarray
    scales: np.ndarray | None = None
    rolling_mean: np.ndarray | None = None
    rolling_variance: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.biases = _as_floats(self.biases)
        self.weights = _as_floats(self.weights)
        self.scales = _optional_floats(self.scales)
        self.rolling_mean = _optional_floats(self.rolling_mean)
        self.rolling_variance = _optional_floats(self.rolling_variance)

    @property
    def outputs(self) -> int:
        return len(self.biases)

    @property
    def batch_normalize(self) -> bool:
        return self.scales is not None


@dataclass(eq=False)
class BatchnormWeights:
    """Per-channel scales and rolling statistics."""

    scales: np.ndarray
    rolling_mean: np.ndarray
    rolling_variance: np.ndarray

    def __post_init__(self) -> None:
        self.scales = _as_floats(self.scales)
        self.rolling_mean = _as_floats(self.rolling_mean)
        self.rolling_variance = _as_floats(self.rolling_variance)


def _write_norm(fp: BinaryIO, weights: ConvolutionalWeights | ConnectedWeights) -> None:
    if weights.rolling_mean is None or weights.rolling_variance is None:
        raise ValueError("batch-normalised weights need scales, rolling mean and variance")
    _write_floats(fp, weights.scales)
    _write_floats(fp, weights.rolling_mean)
    _write_floats(fp, weights.rolling_variance)


def _read_norm(
    fp: BinaryIO, count: int, batch_normalize: bool, dontloadscales: bool
) -> tuple[np.ndarray | None, np.ndarray | None, np.ndarray | None]:
    if not batch_normalize or dontloadscales:
        return None, None, None
    return _read_floats(fp, count), _read_floats(fp, count), _read_floats(fp, count)


def write_convolutional(fp: BinaryIO, weights: ConvolutionalWeights) -> None:
    _write_floats(fp, weights.biases)
    if weights.batch_normalize:
        _write_norm(fp, weights)
    _write_floats(fp, weights.weights)


def read_convolutional(
    fp: BinaryIO,
    n: int,
    c: int,
    size: int,
    batch_normalize: bool = False,
    flipped: bool = False,
    dontloadscales: bool = False,
) -> ConvolutionalWeights:
    """Read ``n`` filters of ``c`` x ``size`` x ``size``; statistics are skipped with ``dontloadscales``."""
    biases = _read_floats(fp, n)
    scales, mean, variance = _read_norm(fp, n, batch_normalize, dontloadscales)
    filters = _read_floats(fp, n * c * size * size)
    if flipped:
        filters = transpose_matrix(filters, c * size * size, n)
    return ConvolutionalWeights(biases, filters, scales, mean, variance)


def write_convolutional_binary(fp: BinaryIO, weights: ConvolutionalWeights) -> None:
    """Write binarised filters: one magnitude per filter, then one sign bit per weight.

    The weights should already be binarised (each filter holds only +m and -m);
    the magnitude is taken from a filter's first weight. Only whole bytes of
    bits are written, so a filter's last ``size % 8`` weights are dropped.
    """
    _write_floats(fp, weights.biases)
    if weights.batch_normalize:
        _write_norm(fp, weights)
    n = weights.n
    if n == 0:
        return
    filters = weights.weights.reshape(n, -1)
    full = filters.shape[1] // 8 * 8
    for row in filters:
        _write_floats(fp, np.array([abs(row[0])], dtype=np.float32))
        bits = np.packbits(row[:full] > 0, bitorder="little")
        fp.write(bits.tobytes())


def read_convolutional_binary(
    fp: BinaryIO,
    n: int,
    c: int,
    size: int,
    batch_normalize: bool = False,
    dontloadscales: bool = False,
) -> ConvolutionalWeights:
    """Read filters written by :func:`write_convolutional_binary`; unstored weights are 0."""
    biases = _read_floats(fp, n)
    scales, mean, variance = _read_norm(fp, n, batch_normalize, dontloadscales)
    per_filter = c * size * size
    nbytes = per_filter // 8
    filters = np.zeros((n, per_filter), dtype=np.float32)
    for row in filters:
        magnitude = float(_read_floats(fp, 1)[0])
        raw = np.frombuffer(_read_exact(fp, nbytes), dtype=np.uint8)
        bits = np.unpackbits(raw, bitorder="little").astype(bool)
        row[: nbytes * 8] = np.where(bits, magnitude, -magnitude)
    return ConvolutionalWeights(biases, filters.ravel(), scales, mean, variance)


def write_connected(fp: BinaryIO, weights: ConnectedWeights) -> None:
    _write_floats(fp, weights.biases)
    _write_floats(fp, weights.weights)
    if weights.batch_normalize:
        _write_norm(fp, weights)


def read_connected(
    fp: BinaryIO,
    inputs: int,
    outputs: int,
    batch_normalize: bool = False,
    transpose: bool = False,
    dontloadscales: bool = False,
) -> ConnectedWeights:
    """Read a connected layer; ``transpose`` undoes an ``inputs`` x ``outputs`` storage order."""
    biases = _read_floats(fp, outputs)
    matrix = _read_floats(fp, outputs * inputs)
    if transpose:
        matrix = transpose_matrix(matrix, inputs, outputs)
    scales, mean, variance = _read_norm(fp, outputs, batch_normalize, dontloadscales)
    return ConnectedWeights(biases, matrix, scales, mean, variance)


def write_batchnorm(fp: BinaryIO, weights: BatchnormWeights) -> None:
    _write_floats(fp, weights.scales)
    _write_floats(fp, weights.rolling_mean)
    _write_floats(fp, weights.rolling_variance)


def read_batchnorm(fp: BinaryIO, c: int) -> BatchnormWeights:
    return BatchnormWeights(
        _read_floats(fp, c), _read_floats(fp, c), _read_floats(fp, c)
    )