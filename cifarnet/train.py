"""Mini-batch gradient-descent training with gradients averaged over a group."""

from __future__ import annotations

import os
from collections.abc import Sequence

import numpy as np

from cifarnet.comm import (
    Communicator,
    SingleProcessCommunicator,
    allreduce_accuracy,
    allreduce_cost,
    allreduce_gradients,
)
from cifarnet.nn import Parameters, compute_cost, model_backward, model_forward
from cifarnet.params import (
    BATCH_SIZE,
    DEFAULT_LEARNING_RATE,
    DEFAULT_NUM_ITERATIONS,
    DEFAULT_NUM_THREADS,
    DEFAULT_PRINT_EVERY,
    initialize_parameters_he,
    update_parameters,
)
from cifarnet.timing import Timer, TimingStats, log_results_to_csv

DEFAULT_RESULTS_PATH = "training_results.csv"


def compute_accuracy(
    x: np.ndarray, y: np.ndarray, params: Parameters, comm: Communicator | None = None
) -> float:
    """Percentage of samples, over the whole group, whose predicted class is right.

    The predicted class is the first row holding a column's largest output; the
    true class is the first row of ``y`` above 0.5, or 0 when there is none.
    """
    comm = comm or SingleProcessCommunicator()
    if x.shape[1] != y.shape[1]:
        raise ValueError(f"{x.shape[1]} inputs but {y.shape[1]} labels")
    al = model_forward(x, params).al
    predicted = np.argmax(al, axis=0)
    true = np.argmax(y > 0.5, axis=0)
    correct = int(np.count_nonzero(predicted == true))
    return allreduce_accuracy(comm, correct, x.shape[1])


def _print_configuration(
    layer_dims: Sequence[int],
    learning_rate: float,
    num_iterations: int,
    num_samples: int,
    train_size: int,
    test_size: int,
    num_processes: int,
    num_threads: int,
    local_batch_size: int,
    num_batches: int,
) -> None:
    print("\n========== TRAINING CONFIGURATION ==========")
    print("Architecture: " + " -> ".join(str(d) for d in layer_dims))
    print(f"Learning rate: {learning_rate:.4f}")
    print(f"Iterations: {num_iterations}")
    print(f"Total samples: {num_samples}")
    print(f"Samples per process: {train_size + test_size}")
    print(f"Local training samples: {train_size}")
    print(f"Local test samples: {test_size}")
    print(f"MPI processes: {num_processes}")
    print(f"OpenMP threads per process: {num_threads}")
    print(
        f"Mini-batch size: {BATCH_SIZE} (global), {local_batch_size} (local per process)"
    )
    print(f"Batches per epoch: {num_batches}")
    print("=============================================\n\n")


def train_model(
    x_train: np.ndarray,
    y_train: np.ndarray,
    x_test: np.ndarray,
    y_test: np.ndarray,
    layer_dims: Sequence[int],
    learning_rate: float = DEFAULT_LEARNING_RATE,
    num_iterations: int = DEFAULT_NUM_ITERATIONS,
    print_every: int = DEFAULT_PRINT_EVERY,
    num_samples: int | None = None,
    num_threads: int = DEFAULT_NUM_THREADS,
    comm: Communicator | None = None,
    results_path: str | os.PathLike[str] | None = DEFAULT_RESULTS_PATH,
) -> Parameters:
    """Train a network on this member's share of the data and return it.

    Every member works through its local samples in mini-batches of
    ``BATCH_SIZE / group size``; costs and gradients are averaged across the
    group after each batch. Progress, the final accuracies and the timing
    summary are printed by rank 0, which also appends a row to
    ``results_path`` unless it is ``None``.
    """
    comm = comm or SingleProcessCommunicator()
    if BATCH_SIZE % comm.size != 0:
        raise ValueError(
            f"BATCH_SIZE ({BATCH_SIZE}) must be divisible by the group size ({comm.size})"
        )
    if x_train.shape[1] != y_train.shape[1] or x_test.shape[1] != y_test.shape[1]:
        raise ValueError("inputs and labels hold different numbers of samples")
    num_train = x_train.shape[1]
    if num_train == 0:
        raise ValueError("training needs at least one sample")
    if num_iterations < 0:
        raise ValueError(f"number of iterations must not be negative, got {num_iterations}")

    stats = TimingStats()
    training_timer = Timer().start()

    local_batch_size = BATCH_SIZE // comm.size
    num_batches = -(-num_train // local_batch_size)
    if num_samples is None:
        num_samples = (num_train + x_test.shape[1]) * comm.size

    # Each rank seeds differently so that the members do not start identical.
    params = initialize_parameters_he(layer_dims, comm.rank)
    leader = comm.rank == 0

    if leader:
        _print_configuration(
            layer_dims, learning_rate, num_iterations, num_samples, num_train,
            x_test.shape[1], comm.size, num_threads, local_batch_size, num_batches,
        )
        print("========== TRAINING LOOP ==========")

    for iteration in range(num_iterations):
        epoch_cost = 0.0
        for start in range(0, num_train, local_batch_size):
            x_batch = x_train[:, start:start + local_batch_size]
            y_batch = y_train[:, start:start + local_batch_size]

            with Timer() as timer:
                fwd = model_forward(x_batch, params)
            stats.forward.add(timer.elapsed_ms)

            with Timer() as timer:
                epoch_cost += allreduce_cost(comm, compute_cost(fwd.al, y_batch))
            stats.cost.add(timer.elapsed_ms)

            with Timer() as timer:
                grads = model_backward(fwd.al, y_batch, fwd)
                allreduce_gradients(comm, grads)
            stats.backward.add(timer.elapsed_ms)

            with Timer() as timer:
                update_parameters(params, grads, learning_rate)
            stats.update.add(timer.elapsed_ms)

        epoch_cost /= num_batches

        if print_every > 0 and iteration % print_every == 0:
            with Timer() as timer:
                train_acc = compute_accuracy(x_train, y_train, params, comm)
                test_acc = compute_accuracy(x_test, y_test, params, comm)
            stats.accuracy.add(timer.elapsed_ms)
            if leader:
                print(
                    f"Iter {iteration:5d}: Avg Cost = {epoch_cost:.6f} | "
                    f"Train Acc = {train_acc:6.2f}% | Test Acc = {test_acc:6.2f}%"
                )

    training_sec = training_timer.stop() / 1000.0
    if leader:
        print("------------------------------------------------------------")
        print(f"[TIMER] Total training time: {training_sec:.2f} seconds")

    final_train_acc = compute_accuracy(x_train, y_train, params, comm)
    final_test_acc = compute_accuracy(x_test, y_test, params, comm)

    if leader:
        print(f"Final Train Accuracy: {final_train_acc:.2f}%")
        print(f"Final Test Accuracy:  {final_test_acc:.2f}%")
        print("=======================================\n")
        print(stats.summary())
        if results_path is not None:
            log_results_to_csv(
                results_path, stats, num_samples, num_iterations, learning_rate,
                final_train_acc, final_test_acc, training_sec, num_threads, comm.size,
            )

    return params