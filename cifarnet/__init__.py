"""A small fully connected neural network trained on CIFAR-10 with averaged gradients."""

__version__ = "0.1.0"