[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cifarnet"
version = "0.1.0"
description = "A small fully connected neural network trained on CIFAR-10 with data-parallel gradient averaging"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["cifar-10", "neural-network", "deep-learning", "data-parallel", "numpy"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
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

[project.scripts]
cifarnet = "cifarnet.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["cifarnet"]

[tool.hatch.build.targets.sdist]
include = ["cifarnet", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
