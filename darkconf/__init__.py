"""Weight files, layer geometry, region decoding, word trees and RNN data for darknet-style networks."""

__version__ = "0.1.0"

__all__ = ["layers", "region", "rnn_data", "tree", "utils", "weights"]