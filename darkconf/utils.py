"""General helpers: string handling, list statistics, random draws and argv lookup."""

from __future__ import annotations

import math
import random
import re
from collections.abc import Iterable, MutableSequence, Sequence
from pathlib import Path
from typing import Any, Protocol, TypeVar

SECRET_NUM = -1234
TWO_PI = math.tau

T = TypeVar("T")

_INT_RE = re.compile(r"\s*[+-]?\d+")
_FLOAT_RE = re.compile(
    r"\s*[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


class RandomSource(Protocol):
    """The part of :class:`random.Random` these helpers rely on."""

    def random(self) -> float: ...

    def randrange(self, start: int, stop: int = ..., step: int = ...) -> int: ...

    def randint(self, a: int, b: int) -> int: ...


def _rng(rng: RandomSource | None) -> Any:
    return random if rng is None else rng


def _atoi(text: str) -> int:
    """Read a leading integer the way C ``atoi`` does; 0 when there is none."""
    match = _INT_RE.match(text)
    return int(match.group()) if match else 0


def _strtod(text: str) -> tuple[float, int]:
    """Read a leading float; return the value and how many characters it used."""
    match = _FLOAT_RE.match(text)
    if not match:
        return 0.0, 0
    return float(match.group().strip()), match.end()


def _atof(text: str) -> float:
    """Read a leading float the way C ``atof`` does; 0.0 when there is none."""
    return _strtod(text)[0]


def read_intlist(s: str | None, default: int) -> list[int]:
    """Parse a comma-separated list of integers, or ``[default]`` when ``s`` is None."""
    if s is None:
        return [default]
    return [_atoi(part) for part in s.split(",")]


def read_map(filename: str | Path) -> list[int]:
    """Read one integer per line from a file."""
    with open(filename, encoding="utf-8") as fh:
        return [_atoi(line) for line in fh]


def shuffle(items: MutableSequence[T], rng: RandomSource | None = None) -> None:
    """Shuffle a sequence in place."""
    source = _rng(rng)
    n = len(items)
    for i in range(n - 1):
        j = source.randrange(i, n)
        items[i], items[j] = items[j], items[i]


def sorta_shuffle(
    items: MutableSequence[T], sections: int, rng: RandomSource | None = None
) -> None:
    """Shuffle each of ``sections`` consecutive slices of a sequence in place."""
    n = len(items)
    for i in range(sections):
        start = n * i // sections
        end = n * (i + 1) // sections
        chunk = list(items[start:end])
        shuffle(chunk, rng)
        items[start:end] = chunk


def basecfg(cfgfile: str) -> str:
    """Return the file name without directories and without anything from the first dot."""
    name = cfgfile.rsplit("/", 1)[-1]
    return name.split(".", 1)[0]


def alphanum_to_int(c: str) -> int:
    """Map '0'-'9' to 0-9 and 'a'-'z' to 10-35."""
    code = ord(c)
    return code - 48 if code < 58 else code - 87


def int_to_alphanum(i: int) -> str:
    """Inverse of :func:`alphanum_to_int`; 36 maps to '.'."""
    if i == 36:
        return "."
    return chr(i + 48) if i < 10 else chr(i + 87)


def find_replace(text: str, orig: str, rep: str) -> str:
    """Replace the first occurrence of ``orig`` in ``text`` with ``rep``."""
    return text.replace(orig, rep, 1)


def top_k(values: Sequence[float], k: int) -> list[int]:
    """Indexes of the ``k`` largest values, best first; -1 fills empty places."""
    index = [-1] * k
    for i, _ in enumerate(values):
        curr = i
        for j in range(k):
            if curr < 0:
                break
            if index[j] < 0 or values[curr] > values[index[j]]:
                curr, index[j] = index[j], curr
    return index


def strip(s: str) -> str:
    """Remove every space, tab and newline."""
    return "".join(c for c in s if c not in " \t\n")


def strip_char(s: str, bad: str) -> str:
    """Remove every occurrence of the character ``bad``."""
    return "".join(c for c in s if c != bad)


def split_str(s: str, delim: str) -> list[str]:
    """Split at every delimiter, keeping empty pieces."""
    return s.split(delim)


def parse_csv_line(line: str) -> list[str]:
    """Split a CSV line at commas outside double quotes; quotes are kept."""
    fields: list[str] = []
    current: list[str] = []
    quoted = False
    for c in line:
        if c == '"':
            quoted = not quoted
            current.append(c)
        elif c == "," and not quoted:
            fields.append("".join(current))
            current = []
        else:
            current.append(c)
    fields.append("".join(current))
    return fields


def count_fields(line: str) -> int:
    """Number of comma-separated fields in a line."""
    return line.count(",") + 1


def parse_fields(line: str, n: int) -> list[float]:
    """Parse up to ``n`` comma-separated floats; empty or malformed fields become NaN."""
    result = [0.0] * n
    for position, field in enumerate(line.split(",")[:n]):
        if not field:
            result[position] = math.nan
            continue
        value, end = _strtod(field)
        trailing_cr = end == len(field) - 1 and field[end] == "\r"
        if end != len(field) and not trailing_cr:
            value = math.nan
        result[position] = value
    return result


def sum_array(a: Iterable[float]) -> float:
    return float(sum(a))


def mean_array(a: Sequence[float]) -> float:
    return sum_array(a) / len(a)


def mean_arrays(arrays: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise mean of several equally long sequences."""
    count = len(arrays)
    return [sum(column) / count for column in zip(*arrays)]


def variance_array(a: Sequence[float]) -> float:
    mean = mean_array(a)
    return sum((x - mean) ** 2 for x in a) / len(a)


def constrain_int(a: int, lo: int, hi: int) -> int:
    if a < lo:
        return lo
    if a > hi:
        return hi
    return a


def constrain(lo: float, hi: float, a: float) -> float:
    if a < lo:
        return lo
    if a > hi:
        return hi
    return a


def dist_array(a: Sequence[float], b: Sequence[float], sub: int) -> float:
    """Euclidean distance over every ``sub``-th element."""
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a[::sub], b[::sub])))


def mse_array(a: Sequence[float]) -> float:
    """Root of the mean of the squares."""
    return math.sqrt(sum(x * x for x in a) / len(a))


def normalize_array(a: Sequence[float]) -> list[float]:
    """Shift and scale to zero mean and unit variance."""
    mu = mean_array(a)
    sigma = math.sqrt(variance_array(a))
    return [(x - mu) / sigma for x in a]


def translate_array(a: Iterable[float], s: float) -> list[float]:
    return [x + s for x in a]


def mag_array(a: Iterable[float]) -> float:
    return math.sqrt(sum(x * x for x in a))


def scale_array(a: Iterable[float], s: float) -> list[float]:
    return [x * s for x in a]


def sample_array(a: Sequence[float], rng: RandomSource | None = None) -> int:
    """Draw an index with probability proportional to its weight."""
    total = sum_array(a)
    r = _rng(rng).random()
    for i, weight in enumerate(a):
        r -= weight / total
        if r <= 0:
            return i
    return len(a) - 1


def max_index(a: Sequence[float]) -> int:
    """Index of the first largest value, or -1 for an empty sequence."""
    if not a:
        return -1
    best = 0
    for i, value in enumerate(a):
        if value > a[best]:
            best = i
    return best


def rand_int(lo: int, hi: int, rng: RandomSource | None = None) -> int:
    """Uniform integer in [lo, hi]; the bounds may come in either order."""
    if hi < lo:
        lo, hi = hi, lo
    return _rng(rng).randint(lo, hi)


def rand_uniform(lo: float, hi: float, rng: RandomSource | None = None) -> float:
    """Uniform float between the bounds; they may come in either order."""
    if hi < lo:
        lo, hi = hi, lo
    return _rng(rng).random() * (hi - lo) + lo


def rand_scale(s: float, rng: RandomSource | None = None) -> float:
    """A factor between 1 and ``s``, or its reciprocal, with equal odds."""
    source = _rng(rng)
    scale = rand_uniform(1, s, source)
    if source.randrange(2):
        return scale
    return 1.0 / scale


def rand_normal(rng: RandomSource | None = None) -> float:
    """Standard normal draw by the Box-Muller transform."""
    source = _rng(rng)
    rand1 = max(source.random(), 1e-100)
    rand1 = -2 * math.log(rand1)
    rand2 = source.random() * TWO_PI
    return math.sqrt(rand1) * math.cos(rand2)


def one_hot_encode(values: Iterable[float], k: int) -> list[list[float]]:
    """One row of length ``k`` per value, with 1.0 at the value's position."""
    rows = []
    for value in values:
        row = [0.0] * k
        row[int(value)] = 1.0
        rows.append(row)
    return rows


def find_arg(argv: list[str], arg: str) -> bool:
    """Remove a flag from ``argv``; tell whether it was there."""
    if arg in argv:
        argv.remove(arg)
        return True
    return False


def _take_value(argv: list[str], arg: str) -> str | None:
    try:
        i = argv.index(arg, 0, max(len(argv) - 1, 0))
    except ValueError:
        return None
    value = argv[i + 1]
    del argv[i : i + 2]
    return value


def find_int_arg(argv: list[str], arg: str, default: int) -> int:
    """Remove ``arg`` and its value from ``argv`` and return the value as an int."""
    value = _take_value(argv, arg)
    return default if value is None else _atoi(value)


def find_float_arg(argv: list[str], arg: str, default: float) -> float:
    """Remove ``arg`` and its value from ``argv`` and return the value as a float."""
    value = _take_value(argv, arg)
    return default if value is None else _atof(value)


def find_char_arg(argv: list[str], arg: str, default: str | None) -> str | None:
    """Remove ``arg`` and its value from ``argv`` and return the value."""
    value = _take_value(argv, arg)
    return default if value is None else value