[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "darkconf"
version = "0.1.0"
description = "Weight file I/O, layer geometry, region decoding and RNN data helpers for darknet-style neural networks"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["neural-network", "weights", "yolo", "darknet", "region-layer", "word-tree"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["darkconf"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
