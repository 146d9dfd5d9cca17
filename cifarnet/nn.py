"""Fully connected network: activations, forward pass, cost and backward pass.

Matrices are ``numpy`` arrays laid out as (features, samples): each column
holds one sample.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

_LOG_EPSILON = 1e-8


class Activation(enum.Enum):
    """Activation applied after a linear layer."""

    RELU = "relu"
    SOFTMAX = "softmax"


@dataclass
class Parameters:
    """Weights and biases of every layer, input layer excluded."""

    weights: list[np.ndarray]
    biases: list[np.ndarray]

    def __post_init__(self) -> None:
        if len(self.weights) != len(self.biases):
            raise ValueError(
                f"{len(self.weights)} weight matrices but {len(self.biases)} bias vectors"
            )
        if not self.weights:
            raise ValueError("a network needs at least one layer")

    def num_layers(self) -> int:
        """Number of layers holding parameters."""
        return len(self.weights)


@dataclass
class Gradients:
    """Gradients of the cost with respect to every layer's parameters."""

    dw: list[np.ndarray]
    db: list[np.ndarray]


@dataclass
class LinearCache:
    """Inputs and output of a linear step, kept for the backward pass."""

    a: np.ndarray
    w: np.ndarray
    b: np.ndarray
    z: np.ndarray


@dataclass
class LayerCache:
    """A linear step together with the activation that followed it."""

    linear: LinearCache
    a: np.ndarray


@dataclass
class ForwardPass:
    """Caches of every layer of one forward pass."""

    caches: list[LayerCache] = field(default_factory=list)

    @property
    def al(self) -> np.ndarray:
        """Output of the last layer."""
        return self.caches[-1].a


@dataclass
class LinearGrads:
    """Gradients produced by the backward step of one linear layer."""

    da_prev: np.ndarray
    dw: np.ndarray
    db: np.ndarray


def _require_same_shape(first: np.ndarray, second: np.ndarray, what: str) -> None:
    if first.shape != second.shape:
        raise ValueError(f"{what}: shapes {first.shape} and {second.shape} differ")


def relu(z: np.ndarray) -> np.ndarray:
    """Element-wise max(0, z)."""
    return np.maximum(0.0, z)


def softmax(z: np.ndarray) -> np.ndarray:
    """Column-wise softmax, shifted by each column's maximum for stability."""
    z = np.asarray(z, dtype=float)
    if z.ndim != 2 or z.shape[0] == 0:
        raise ValueError(f"softmax needs a non-empty 2-D matrix, got shape {z.shape}")
    shifted = np.exp(z - z.max(axis=0, keepdims=True))
    return shifted / shifted.sum(axis=0, keepdims=True)


def relu_backward(da: np.ndarray, z_cache: np.ndarray) -> np.ndarray:
    """Pass the gradient through where the pre-activation was positive."""
    _require_same_shape(da, z_cache, "relu_backward")
    return np.where(z_cache > 0, da, 0.0)


def linear_forward(a: np.ndarray, w: np.ndarray, b: np.ndarray) -> LinearCache:
    """Compute Z = W A + b, broadcasting the bias column over all samples."""
    if w.shape[1] != a.shape[0]:
        raise ValueError(f"cannot multiply {w.shape} weights by {a.shape} input")
    if b.shape != (w.shape[0], 1):
        raise ValueError(f"bias shape {b.shape} does not match {w.shape[0]} units")
    return LinearCache(a=a, w=w, b=b, z=w @ a + b)


def linear_activation_forward(
    a_prev: np.ndarray, w: np.ndarray, b: np.ndarray, activation: Activation
) -> LayerCache:
    """Linear step followed by the given activation."""
    linear = linear_forward(a_prev, w, b)
    if activation is Activation.RELU:
        out = relu(linear.z)
    elif activation is Activation.SOFTMAX:
        out = softmax(linear.z)
    else:
        raise ValueError(f"unknown activation {activation!r}")
    return LayerCache(linear=linear, a=out)


def model_forward(x: np.ndarray, params: Parameters) -> ForwardPass:
    """Run ReLU hidden layers and a softmax output layer over ``x``."""
    fwd = ForwardPass()
    a = x
    last = params.num_layers() - 1
    for index, (w, b) in enumerate(zip(params.weights, params.biases)):
        activation = Activation.SOFTMAX if index == last else Activation.RELU
        cache = linear_activation_forward(a, w, b, activation)
        fwd.caches.append(cache)
        a = cache.a
    return fwd


def compute_cost(al: np.ndarray, y: np.ndarray) -> float:
    """Mean cross-entropy over the samples (columns) of ``y``."""
    _require_same_shape(al, y, "compute_cost")
    m = y.shape[1]
    if m == 0:
        raise ValueError("compute_cost needs at least one sample")
    mask = y > 0
    cost = -np.sum(y[mask] * np.log(al[mask] + _LOG_EPSILON))
    return float(cost / m)


def linear_backward(dz: np.ndarray, cache: LinearCache) -> LinearGrads:
    """Gradients of a linear step, averaged over the batch."""
    m = cache.a.shape[1]
    if dz.shape != cache.z.shape:
        raise ValueError(f"gradient shape {dz.shape} does not match {cache.z.shape}")
    inv_m = 1.0 / m
    return LinearGrads(
        da_prev=cache.w.T @ dz,
        dw=(dz @ cache.a.T) * inv_m,
        db=dz.sum(axis=1, keepdims=True) * inv_m,
    )


def linear_activation_backward(
    da: np.ndarray, cache: LayerCache, activation: Activation
) -> LinearGrads:
    """Backward step through an activation and its linear step.

    For softmax the incoming gradient is taken to be AL - Y already, as it is
    when softmax is paired with cross-entropy.
    """
    if activation is Activation.RELU:
        dz = relu_backward(da, cache.linear.z)
    elif activation is Activation.SOFTMAX:
        dz = da
    else:
        raise ValueError(f"unknown activation {activation!r}")
    return linear_backward(dz, cache.linear)


def model_backward(al: np.ndarray, y: np.ndarray, fwd: ForwardPass) -> Gradients:
    """Gradients of the cross-entropy cost for every layer."""
    _require_same_shape(al, y, "model_backward")
    num_layers = len(fwd.caches)
    dw: list[np.ndarray] = [np.empty(0)] * num_layers
    db: list[np.ndarray] = [np.empty(0)] * num_layers

    current = linear_activation_backward(al - y, fwd.caches[-1], Activation.SOFTMAX)
    dw[-1], db[-1] = current.dw, current.db
    da = current.da_prev

    for index in reversed(range(num_layers - 1)):
        current = linear_activation_backward(da, fwd.caches[index], Activation.RELU)
        dw[index], db[index] = current.dw, current.db
        da = current.da_prev

    return Gradients(dw=dw, db=db)