"""Training data for character- and token-level recurrent networks."""

from __future__ import annotations

import re
from collections.abc import MutableSequence, Sequence
from pathlib import Path

import numpy as np

_LEADING_INT = re.compile(r"[+-]?\d+")


def read_tokenized_data(filename: str | Path) -> list[int]:
    """Read whitespace-separated integers, stopping at the first token that is not one."""
    tokens: list[int] = []
    with open(filename, encoding="utf-8") as fh:
        for word in fh.read().split():
            match = _LEADING_INT.match(word)
            if match is None:
                break
            tokens.append(int(match.group()))
            if match.end() != len(word):
                break
    return tokens


def read_tokens(filename: str | Path) -> list[str]:
    """Read one token per line, without the line ending."""
    with open(filename, encoding="utf-8") as fh:
        return [line[:-1] if line.endswith("\n") else line for line in fh]


def _one_hot_pairs(
    sequence: Sequence[int],
    offsets: MutableSequence[int],
    characters: int,
    batch: int,
    steps: int,
    lowest: int,
) -> tuple[np.ndarray, np.ndarray]:
    length = len(sequence)
    if length == 0:
        raise ValueError("cannot draw training data from an empty sequence")
    if len(offsets) < batch:
        raise ValueError("need one offset per stream")
    x = np.zeros((steps * batch, characters), dtype=np.float32)
    y = np.zeros((steps * batch, characters), dtype=np.float32)
    for i in range(batch):
        for j in range(steps):
            curr = int(sequence[offsets[i] % length])
            nxt = int(sequence[(offsets[i] + 1) % length])
            if not (lowest <= curr < characters and lowest <= nxt < characters):
                raise ValueError("Bad char")
            row = j * batch + i
            x[row, curr] = 1
            y[row, nxt] = 1
            offsets[i] = (offsets[i] + 1) % length
    return x, y


def get_rnn_token_data(
    tokens: Sequence[int],
    offsets: MutableSequence[int],
    characters: int,
    batch: int,
    steps: int,
) -> tuple[np.ndarray, np.ndarray]:
    """One-hot inputs and next-token targets for ``batch`` streams over ``steps`` steps.

    Row ``j * batch + i`` holds step ``j`` of stream ``i``; each stream starts
    at its offset, and ``offsets`` is advanced in place, wrapping around.
    """
    return _one_hot_pairs(tokens, offsets, characters, batch, steps, lowest=0)


def get_rnn_data(
    text: bytes,
    offsets: MutableSequence[int],
    characters: int,
    batch: int,
    steps: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Like :func:`get_rnn_token_data` over the bytes of a text; zero bytes are rejected."""
    return _one_hot_pairs(bytes(text), offsets, characters, batch, steps, lowest=1)