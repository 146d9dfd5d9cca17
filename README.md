# cifarnet

A small fully connected neural network (3072 → 128 → 64 → 10) trained on the
CIFAR-10 image dataset with mini-batch gradient descent. ReLU hidden layers, a
softmax output layer, cross-entropy loss and He-initialised weights, all built
on NumPy.

Training can be split across several data-parallel workers: each worker takes
a disjoint, class-balanced share of the samples, and the gradients and cost are
averaged across workers after every mini-batch; accuracy is counted over all
workers together.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Data

Download the binary version of CIFAR-10 and unpack it so the five training
batches sit in a directory named `cifar-10-batches-bin` in the directory you
run the command from:

```
cifar-10-batches-bin/data_batch_1.bin
...
cifar-10-batches-bin/data_batch_5.bin
```

Each file holds 10,000 records of one label byte followed by 3,072 pixel bytes.
A missing or short file stops the run with an error.

## Command line

```
cifarnet [OPTIONS]
```

| Option | Meaning | Default |
| --- | --- | --- |
| `-n`, `--train-samples <num>` | Number of training samples (1 to 43200) | 43200 |
| `-i`, `--iterations <num>` | Number of training iterations (epochs) | 1000 |
| `-p`, `--print <num>` | Print progress every N iterations (0 turns it off) | 100 |
| `-t`, `--threads <num>` | Threads per worker, reported in the output and the results file | 1 |
| `-P`, `--processes <num>` | Number of data-parallel workers; must divide 64 | 1 |
| `-h`, `--help` | Show the help message | |

The number of training samples must be divisible by 64 (the global mini-batch
size) and by 90 (ten balanced classes with a 9:1 train/test split), that is by
2880. One test sample is taken for every nine training samples. Invalid
options print an error and the command exits with status 1.

Example:

```
cifarnet -n 2880 -i 10 -p 1 -P 4
```

With more than one worker, the workers run as threads of one Python process,
each training on its own share and exchanging gradients through
`cifarnet.comm.create_local_group`. Worker 0 prints the progress, the final
accuracies and a timing summary, and appends a row of results to
`training_results.csv` (a header is written when the file is new).

## Library use

```python
from cifarnet.dataset import load_cifar10, prepare_data
from cifarnet.comm import SingleProcessCommunicator
from cifarnet.train import train_model

images = load_cifar10("cifar-10-batches-bin")
data = prepare_data(images, num_samples=3200, rank=0, num_processes=1)

params = train_model(
    data.x_train, data.y_train, data.x_test, data.y_test,
    layer_dims=[3072, 128, 64, 10],
    learning_rate=0.001,
    num_iterations=10,
    print_every=1,
    num_samples=3200,
    num_threads=1,
    comm=SingleProcessCommunicator(),
    results_path="training_results.csv",
)
```

Pass `results_path=None` to skip the CSV log.

The modules:

- `cifarnet.nn`: activations (`relu`, `softmax`, `relu_backward`),
  `model_forward`, `compute_cost`, `model_backward` and the `Parameters` and
  `Gradients` containers. Matrices are laid out one sample per column.
- `cifarnet.params`: `initialize_parameters_he`, `update_parameters` and the
  training defaults.
- `cifarnet.comm`: `SingleProcessCommunicator`, `create_local_group` and the
  averaging helpers `allreduce_gradients`, `allreduce_cost`,
  `allreduce_accuracy`.
- `cifarnet.dataset`: `load_batch_file`, `load_cifar10`, `prepare_data`.
- `cifarnet.train`: `train_model`, `compute_accuracy`.
- `cifarnet.timing`: `Timer`, `TimingStats`, `log_results_to_csv`.
- `cifarnet.cli`: `parse_args`, `run`, `main`.

## What it does not do

- Workers are threads in one process; there is no communicator that spans
  several processes or machines.
- The `--threads` setting is only recorded; NumPy's own threading decides how
  the arithmetic is run.
- Trained parameters are not saved to disk, and the CIFAR-10 test batch is not
  read: the test set is taken from the five training batches.