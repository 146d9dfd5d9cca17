"""Command line: parse options, load and split the data, train and report."""

from __future__ import annotations

import os
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from cifarnet.comm import Communicator, SingleProcessCommunicator, create_local_group
from cifarnet.dataset import (
    DEFAULT_DATA_DIR,
    NUM_CLASSES,
    PIXELS_PER_IMAGE,
    TOTAL_IMAGES,
    DataError,
    PreparedData,
    load_cifar10,
    prepare_data,
)
from cifarnet.nn import Parameters
from cifarnet.params import (
    BATCH_SIZE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_NUM_ITERATIONS,
    DEFAULT_NUM_THREADS,
    DEFAULT_PRINT_EVERY,
    DEFAULT_TRAINING_SAMPLES,
    MAX_TRAINING_SAMPLES,
)
from cifarnet.timing import Timer
from cifarnet.train import DEFAULT_RESULTS_PATH, train_model

PROG_NAME = "cifarnet"
HIDDEN_LAYERS = (128, 64)


class UsageError(Exception):
    """The command line is invalid."""

    def __init__(self, message: str, show_usage: bool = False) -> None:
        super().__init__(message)
        self.show_usage = show_usage


@dataclass
class RunConfig:
    """Options of one training run."""

    num_training_samples: int = DEFAULT_TRAINING_SAMPLES
    num_iterations: int = DEFAULT_NUM_ITERATIONS
    print_every: int = DEFAULT_PRINT_EVERY
    num_threads: int = DEFAULT_NUM_THREADS
    num_processes: int = 1
    show_help: bool = False
    results_path: str | os.PathLike[str] | None = DEFAULT_RESULTS_PATH

    @property
    def num_test_samples(self) -> int:
        return self.num_training_samples // 9

    @property
    def num_samples(self) -> int:
        return self.num_training_samples + self.num_test_samples


def usage() -> str:
    """Help text for the command."""
    return "\n".join([
        f"Usage: {PROG_NAME} [OPTIONS]",
        "Options:",
        f"  -n, --train-samples <num> Number of training samples "
        f"(max {MAX_TRAINING_SAMPLES}, default {DEFAULT_TRAINING_SAMPLES})",
        f"                            Must be divisible by BATCH_SIZE ({BATCH_SIZE}) "
        "and 90 (for 10 classes, 9:1 split)",
        "                            In other words, must be divisible by 2880",
        f"  -i, --iterations <num>    Number of training iterations "
        f"(default {DEFAULT_NUM_ITERATIONS})",
        f"  -p, --print <num>         Print progress every N iterations "
        f"(default {DEFAULT_PRINT_EVERY})",
        f"  -t, --threads <num>       Number of threads per process "
        f"(default {DEFAULT_NUM_THREADS})",
        "  -P, --processes <num>     Number of training processes (default 1)",
        "  -h, --help                Show this help message",
        "",
        "Example:",
        f"  {PROG_NAME} -n 2880 -i 10 -p 1 -t 4 -P 4",
    ])


def _atoi(text: str) -> int:
    """Leading integer of ``text``, or 0 when it has none."""
    stripped = text.lstrip()
    sign = ""
    if stripped[:1] in ("+", "-"):
        sign, stripped = stripped[0], stripped[1:]
    digits = ""
    for char in stripped:
        if not char.isdigit():
            break
        digits += char
    return int(sign + digits) if digits else 0


_OPTIONS = {
    "-n": "num_training_samples", "--train-samples": "num_training_samples",
    "-i": "num_iterations", "--iterations": "num_iterations",
    "-p": "print_every", "--print": "print_every",
    "-t": "num_threads", "--threads": "num_threads",
    "-P": "num_processes", "--processes": "num_processes",
}


def _check_option(name: str, value: int) -> None:
    if name == "num_training_samples" and not 0 < value <= MAX_TRAINING_SAMPLES:
        raise UsageError(
            f"Number of training samples must be between 1 and {MAX_TRAINING_SAMPLES}"
        )
    if name == "num_iterations" and value <= 0:
        raise UsageError("Number of iterations must be positive")
    if name == "print_every" and value < 0:
        raise UsageError("Print frequency must be non-negative")
    if name == "num_threads" and value <= 0:
        raise UsageError("Number of threads must be positive")
    if name == "num_processes" and value <= 0:
        raise UsageError("Number of processes must be positive")


def parse_args(argv: list[str] | None = None) -> RunConfig:
    """Build a run configuration from the command-line arguments."""
    args = list(sys.argv[1:] if argv is None else argv)
    config = RunConfig()
    remaining = iter(enumerate(args))
    for index, arg in remaining:
        if arg in ("-h", "--help"):
            config.show_help = True
            return config
        name = _OPTIONS.get(arg)
        if name is None or index + 1 >= len(args):
            raise UsageError(f"Unknown argument '{arg}'", show_usage=True)
        _, raw = next(remaining)
        value = _atoi(raw)
        _check_option(name, value)
        setattr(config, name, value)

    if BATCH_SIZE % config.num_processes != 0:
        raise UsageError(
            f"BATCH_SIZE ({BATCH_SIZE}) must be divisible by num_processes "
            f"({config.num_processes})"
        )
    if config.num_training_samples % BATCH_SIZE != 0:
        raise UsageError(
            f"Training samples ({config.num_training_samples}) must be divisible by "
            f"BATCH_SIZE ({BATCH_SIZE})"
        )
    if config.num_training_samples % 90 != 0:
        raise UsageError(
            f"Training samples ({config.num_training_samples}) must be divisible by 90"
        )
    return config


def _print_run_header(config: RunConfig) -> None:
    procs = config.num_processes
    print("\n========== CIFAR-10 Neural Network (MPI + OpenMP) ==========")
    print(f"Training samples: {config.num_training_samples} (90% of total)")
    print(f"Test samples: {config.num_test_samples} (10% of total)")
    print(f"Total samples: {config.num_samples}")
    print(f"MPI processes: {procs}")
    print(
        f"Samples per process: {config.num_samples // procs} "
        f"(train: {config.num_training_samples // procs}, "
        f"test: {config.num_test_samples // procs})"
    )
    print(
        f"Samples per class (global): train: {config.num_training_samples // NUM_CLASSES}, "
        f"test: {config.num_test_samples // NUM_CLASSES}"
    )
    print(f"Mini-batch size: {BATCH_SIZE} (global), {BATCH_SIZE // procs} (per process)")
    print(f"Iterations: {config.num_iterations}")
    print(f"Print every: {config.print_every} iterations")
    print(f"OpenMP threads per process: {config.num_threads}")
    print("=============================================================\n")


def run(config: RunConfig, data_dir: str | os.PathLike[str] = DEFAULT_DATA_DIR) -> Parameters:
    """Load the data, split it between the members, train, and return rank 0's model."""
    total_timer = Timer().start()
    startup_timer = Timer().start()
    _print_run_header(config)

    with Timer() as load_timer:
        images = load_cifar10(data_dir)
    print("\n========= DATA LOADED ==========")
    print(f"[TIMER] Data loading: {load_timer.elapsed_ms:.2f} ms")
    print(f"Successfully loaded {TOTAL_IMAGES} total images ({images.memory_mb:.2f} MB)")
    print("================================\n")

    with Timer() as transform_timer:
        shares = [
            prepare_data(images, config.num_samples, rank, config.num_processes)
            for rank in range(config.num_processes)
        ]
    local = shares[0]
    print("\n====== DATA TRANSFORMED ======")
    print(f"[TIMER] Data transformation: {transform_timer.elapsed_ms:.2f} ms")
    print("Each process prepared its data subset")
    print("Local data shapes (per process):")
    print(f"  X_train: {local.x_train.shape[0]} x {local.x_train.shape[1]} (features x samples)")
    print(f"  Y_train: {local.y_train.shape[0]} x {local.y_train.shape[1]} (classes x samples)")
    print(f"  X_test:  {local.x_test.shape[0]} x {local.x_test.shape[1]}")
    print(f"  Y_test:  {local.y_test.shape[0]} x {local.y_test.shape[1]}")
    print("================================\n")

    print(f"\n[TIMER] Total startup: {startup_timer.stop():.2f} ms\n")

    layer_dims = [PIXELS_PER_IMAGE, *HIDDEN_LAYERS, NUM_CLASSES]

    def train(comm: Communicator, share: PreparedData) -> Parameters:
        return train_model(
            share.x_train, share.y_train, share.x_test, share.y_test, layer_dims,
            DEFAULT_LEARNING_RATE, config.num_iterations, config.print_every,
            config.num_samples, config.num_threads, comm, config.results_path,
        )

    if config.num_processes == 1:
        params = train(SingleProcessCommunicator(), local)
    else:
        comms = create_local_group(config.num_processes)
        with ThreadPoolExecutor(max_workers=config.num_processes) as pool:
            futures = [pool.submit(train, comm, share) for comm, share in zip(comms, shares)]
            params = [future.result() for future in futures][0]

    print("\nCleaning up...")
    total_sec = total_timer.stop() / 1000.0
    print("Done!\n")
    print("========================================")
    print(f"[TIMER] TOTAL PROGRAM TIME: {total_sec:.3f} seconds")
    print("========================================")
    return params


def main(argv: list[str] | None = None) -> int:
    """Run the command and return its exit status."""
    try:
        config = parse_args(argv)
    except UsageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        if exc.show_usage:
            print(usage())
        return 1
    if config.show_help:
        print(usage())
        return 0
    try:
        run(config)
    except DataError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print("Failed to initialize CIFAR-10 data", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())