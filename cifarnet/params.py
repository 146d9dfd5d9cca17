"""Training configuration, parameter initialisation and gradient descent."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from cifarnet.nn import Gradients, Parameters

MAX_TRAINING_SAMPLES = 43200
DEFAULT_TRAINING_SAMPLES = MAX_TRAINING_SAMPLES
DEFAULT_LEARNING_RATE = 0.001
DEFAULT_NUM_ITERATIONS = 1000
DEFAULT_PRINT_EVERY = 100
BATCH_SIZE = 64
RANDOM_SEED = 42
DEFAULT_NUM_THREADS = 1

_MIN_UNIFORM = 1e-10


def initialize_parameters_he(layer_dims: Sequence[int], seed_offset: int = 0) -> Parameters:
    """He-initialised weights and zero biases for the given layer sizes.

    ``layer_dims`` lists the input size followed by each layer's size. Weights
    are drawn from N(0, 2 / fan_in) with the Box-Muller transform, seeded with
    ``RANDOM_SEED + seed_offset``.
    """
    dims = list(layer_dims)
    if len(dims) < 2:
        raise ValueError("layer_dims needs an input size and at least one layer")
    if any(d <= 0 for d in dims):
        raise ValueError(f"layer sizes must be positive, got {dims}")

    rng = np.random.default_rng(RANDOM_SEED + seed_offset)
    weights: list[np.ndarray] = []
    biases: list[np.ndarray] = []
    for fan_in, fan_out in zip(dims, dims[1:]):
        u1 = np.maximum(rng.random((fan_out, fan_in)), _MIN_UNIFORM)
        u2 = rng.random((fan_out, fan_in))
        normal = np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
        weights.append(normal * np.sqrt(2.0 / fan_in))
        biases.append(np.zeros((fan_out, 1)))
    return Parameters(weights=weights, biases=biases)


def update_parameters(params: Parameters, grads: Gradients, learning_rate: float) -> None:
    """Take one gradient-descent step, updating ``params`` in place."""
    if len(grads.dw) != params.num_layers() or len(grads.db) != params.num_layers():
        raise ValueError("gradients and parameters have different numbers of layers")
    for w, b, dw, db in zip(params.weights, params.biases, grads.dw, grads.db):
        if w.shape != dw.shape or b.shape != db.shape:
            raise ValueError("gradient shapes do not match parameter shapes")
        w -= learning_rate * dw
        b -= learning_rate * db