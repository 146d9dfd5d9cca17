"""Reading the CIFAR-10 binary batches and splitting them between processes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import numpy as np

IMAGE_SIZE = 32
CHANNELS = 3
PIXELS_PER_IMAGE = IMAGE_SIZE * IMAGE_SIZE * CHANNELS
RECORD_SIZE = 1 + PIXELS_PER_IMAGE
NUM_CLASSES = 10
IMAGES_PER_BATCH = 10000
NUM_BATCHES = 5
TOTAL_IMAGES = IMAGES_PER_BATCH * NUM_BATCHES
DEFAULT_DATA_DIR = "cifar-10-batches-bin"

CLASS_NAMES = (
    "airplane", "automobile", "bird", "cat", "deer",
    "dog", "frog", "horse", "ship", "truck",
)


class DataError(Exception):
    """The image data could not be read or split as requested."""


@dataclass(frozen=True)
class Cifar10Images:
    """Raw images: one label and one row of bytes per image."""

    labels: np.ndarray
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.labels.ndim != 1:
            raise DataError(f"labels must be one-dimensional, got shape {self.labels.shape}")
        if self.pixels.shape != (len(self.labels), PIXELS_PER_IMAGE):
            raise DataError(
                f"pixels shape {self.pixels.shape} does not match {len(self.labels)} images"
            )
        if len(self.labels) and int(self.labels.max()) >= NUM_CLASSES:
            raise DataError(f"label {int(self.labels.max())} is not a CIFAR-10 class")

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def memory_mb(self) -> float:
        """Memory held by the images, in MiB."""
        return (self.labels.nbytes + self.pixels.nbytes) / (1024.0 * 1024.0)


@dataclass
class PreparedData:
    """Normalised features and one-hot labels, one sample per column."""

    x_train: np.ndarray
    y_train: np.ndarray
    x_test: np.ndarray
    y_test: np.ndarray

    @property
    def train_size(self) -> int:
        return self.x_train.shape[1]

    @property
    def test_size(self) -> int:
        return self.x_test.shape[1]


def load_batch_file(path: str | os.PathLike[str]) -> Cifar10Images:
    """Read the images of one binary batch file."""
    wanted = IMAGES_PER_BATCH * RECORD_SIZE
    try:
        with open(path, "rb") as handle:
            raw = handle.read(wanted)
    except OSError as exc:
        raise DataError(f"cannot open file {path}") from exc
    if len(raw) < wanted:
        complete, remainder = divmod(len(raw), RECORD_SIZE)
        part = "label" if remainder == 0 else "pixel data"
        raise DataError(f"error reading {part} for image {complete} in {path}")
    records = np.frombuffer(raw, dtype=np.uint8).reshape(IMAGES_PER_BATCH, RECORD_SIZE)
    return Cifar10Images(labels=records[:, 0].copy(), pixels=records[:, 1:].copy())


def load_cifar10(directory: str | os.PathLike[str] = DEFAULT_DATA_DIR) -> Cifar10Images:
    """Read all training batches from ``directory``."""
    directory = Path(directory)
    batches = []
    for number in range(1, NUM_BATCHES + 1):
        try:
            batches.append(load_batch_file(directory / f"data_batch_{number}.bin"))
        except DataError as exc:
            raise DataError(f"failed to read batch {number}: {exc}") from exc
    return Cifar10Images(
        labels=np.concatenate([batch.labels for batch in batches]),
        pixels=np.concatenate([batch.pixels for batch in batches]),
    )


def _to_columns(images: Cifar10Images, indices: list[int]) -> tuple[np.ndarray, np.ndarray]:
    x = images.pixels[indices].T / 255.0
    y = np.zeros((NUM_CLASSES, len(indices)))
    y[images.labels[indices], np.arange(len(indices))] = 1.0
    return x, y


def prepare_data(
    images: Cifar10Images, num_samples: int, rank: int, num_processes: int
) -> PreparedData:
    """Select this rank's class-balanced share of the images, split 9:1.

    Within each class, rank ``r`` takes the images numbered
    ``[r * k, (r + 1) * k)`` in order of appearance, where ``k`` is the
    per-class share of one process.
    """
    if num_processes <= 0:
        raise ValueError(f"number of processes must be positive, got {num_processes}")
    if not 0 <= rank < num_processes:
        raise ValueError(f"rank {rank} outside {num_processes} processes")
    if num_samples <= 0:
        raise ValueError(f"number of samples must be positive, got {num_samples}")

    samples_per_process = num_samples // num_processes
    train_size = samples_per_process * 9 // 10
    test_size = samples_per_process - train_size
    if train_size <= 0 or test_size <= 0:
        raise DataError(
            f"{num_samples} samples over {num_processes} processes leave no room for "
            "both a training and a test set"
        )
    per_class_per_process = (num_samples // NUM_CLASSES) // num_processes
    train_per_class = train_size // NUM_CLASSES
    test_per_class = test_size // NUM_CLASSES
    first = rank * per_class_per_process
    last = first + per_class_per_process

    seen = [0] * NUM_CLASSES
    train_count = [0] * NUM_CLASSES
    test_count = [0] * NUM_CLASSES
    train_indices: list[int] = []
    test_indices: list[int] = []

    for index, label in enumerate(images.labels.tolist()):
        if len(train_indices) >= train_size and len(test_indices) >= test_size:
            break
        position = seen[label]
        seen[label] += 1
        if not first <= position < last:
            continue
        if train_count[label] < train_per_class and len(train_indices) < train_size:
            train_indices.append(index)
            train_count[label] += 1
        elif test_count[label] < test_per_class and len(test_indices) < test_size:
            test_indices.append(index)
            test_count[label] += 1

    if len(train_indices) != train_size or len(test_indices) != test_size:
        raise DataError(
            f"rank {rank}: expected {train_size} train and {test_size} test samples, "
            f"got {len(train_indices)} and {len(test_indices)}"
        )

    x_train, y_train = _to_columns(images, train_indices)
    x_test, y_test = _to_columns(images, test_indices)
    return PreparedData(x_train=x_train, y_train=y_train, x_test=x_test, y_test=y_test)