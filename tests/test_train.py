from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from cifarnet.comm import create_local_group
from cifarnet.nn import Parameters
from cifarnet.timing import CSV_HEADER
from cifarnet.train import compute_accuracy, train_model


def _separable(n, seed):
    rng = np.random.default_rng(seed)
    x = rng.uniform(-1.0, 1.0, size=(2, n))
    labels = (x[0] > x[1]).astype(int)
    y = np.zeros((2, n))
    y[labels, np.arange(n)] = 1.0
    return x, y


def _identity_params():
    return Parameters(weights=[np.eye(2)], biases=[np.zeros((2, 1))])


def test_compute_accuracy_all_correct():
    x = np.array([[2.0, 0.0, 1.0], [0.0, 2.0, 3.0]])
    y = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 1.0]])
    assert compute_accuracy(x, y, _identity_params()) == pytest.approx(100.0)


def test_compute_accuracy_none_correct():
    x = np.array([[2.0, 0.0, 1.0], [0.0, 2.0, 3.0]])
    y = np.array([[0.0, 1.0, 1.0], [1.0, 0.0, 0.0]])
    assert compute_accuracy(x, y, _identity_params()) == pytest.approx(0.0)


def test_compute_accuracy_unlabelled_column_counts_as_class_zero():
    x = np.array([[2.0, 0.0], [0.0, 2.0]])
    y = np.zeros((2, 2))
    both_zero = compute_accuracy(x, y, _identity_params())
    y_first = np.array([[1.0, 1.0], [0.0, 0.0]])
    assert both_zero == compute_accuracy(x, y_first, _identity_params())


def test_compute_accuracy_is_combined_over_group():
    x = np.array([[2.0, 0.0], [0.0, 2.0]])
    right = np.array([[1.0, 0.0], [0.0, 1.0]])
    wrong = right[::-1].copy()
    comms = create_local_group(2)
    with ThreadPoolExecutor(2) as pool:
        futures = [
            pool.submit(compute_accuracy, x, labels, _identity_params(), comm)
            for comm, labels in zip(comms, (right, wrong))
        ]
        results = [f.result() for f in futures]
    single = [compute_accuracy(x, right, _identity_params()),
              compute_accuracy(x, wrong, _identity_params())]
    assert results[0] == results[1]
    assert results[0] == pytest.approx(sum(single) / 2)


def test_train_model_returns_parameters_of_requested_shape():
    x, y = _separable(128, 1)
    xt, yt = _separable(32, 2)
    params = train_model(x, y, xt, yt, [2, 5, 3, 2], 0.1, 2, 0, results_path=None)
    assert [w.shape for w in params.weights] == [(5, 2), (3, 5), (2, 3)]
    assert [b.shape for b in params.biases] == [(5, 1), (3, 1), (2, 1)]


def test_train_model_learns_separable_data():
    x, y = _separable(256, 3)
    xt, yt = _separable(64, 4)
    params = train_model(x, y, xt, yt, [2, 16, 2], 0.5, 100, 0, results_path=None)
    assert compute_accuracy(x, y, params) > 90.0
    assert compute_accuracy(xt, yt, params) > 85.0


def test_train_model_is_deterministic():
    x, y = _separable(96, 5)
    xt, yt = _separable(16, 6)
    first = train_model(x, y, xt, yt, [2, 4, 2], 0.1, 3, 0, results_path=None)
    second = train_model(x, y, xt, yt, [2, 4, 2], 0.1, 3, 0, results_path=None)
    for a, b in zip(first.weights + first.biases, second.weights + second.biases):
        np.testing.assert_array_equal(a, b)


def test_progress_lines_follow_print_every(capsys):
    x, y = _separable(64, 7)
    xt, yt = _separable(16, 8)
    train_model(x, y, xt, yt, [2, 4, 2], 0.1, 5, 2, results_path=None)
    out = capsys.readouterr().out
    iters = [int(line.split(":")[0].split()[1]) for line in out.splitlines()
             if line.startswith("Iter ")]
    assert iters == list(range(0, 5, 2))
    assert "Final Train Accuracy" in out
    assert "Architecture: 2 -> 4 -> 2" in out


def test_no_progress_when_print_every_is_zero(capsys):
    x, y = _separable(64, 9)
    xt, yt = _separable(16, 10)
    params = train_model(x, y, xt, yt, [2, 4, 2], 0.1, 3, 0, results_path=None)
    out = capsys.readouterr().out
    iter_lines = [line for line in out.splitlines() if line.startswith("Iter ")]
    assert iter_lines == []
    assert "Final Train Accuracy" in out
    assert params.num_layers() == 2
    assert [w.shape for w in params.weights] == [(4, 2), (2, 4)]


def test_results_are_logged_to_csv(tmp_path):
    x, y = _separable(64, 11)
    xt, yt = _separable(16, 12)
    path = tmp_path / "results.csv"
    train_model(x, y, xt, yt, [2, 4, 2], 0.1, 2, 0, num_samples=80, results_path=path)
    train_model(x, y, xt, yt, [2, 4, 2], 0.1, 2, 0, num_samples=80, results_path=path)
    rows = path.read_text().splitlines()
    assert rows[0] == CSV_HEADER
    assert len(rows) == 3
    assert rows[1].split(",")[:2] == ["80", "2"]


def test_two_member_group_logs_once(tmp_path):
    path = tmp_path / "results.csv"
    comms = create_local_group(2)
    shares = [(_separable(64, 20 + r), _separable(16, 30 + r)) for r in range(2)]
    with ThreadPoolExecutor(2) as pool:
        futures = [
            pool.submit(train_model, x, y, xt, yt, [2, 4, 2], 0.1, 2, 1, None, 1, comm, path)
            for comm, ((x, y), (xt, yt)) in zip(comms, shares)
        ]
        results = [f.result() for f in futures]
    assert all(p.num_layers() == 2 for p in results)
    rows = path.read_text().splitlines()
    assert len(rows) == 2
    assert rows[1].split(",")[7] == "2"


def test_group_size_must_divide_batch():
    x, y = _separable(64, 13)
    xt, yt = _separable(16, 14)
    comms = create_local_group(3)
    with pytest.raises(ValueError, match="BATCH_SIZE"):
        train_model(x, y, xt, yt, [2, 4, 2], 0.1, 1, 0, comm=comms[0], results_path=None)


def test_empty_training_set_is_rejected():
    xt, yt = _separable(16, 15)
    with pytest.raises(ValueError):
        train_model(np.zeros((2, 0)), np.zeros((2, 0)), xt, yt, [2, 4, 2],
                    0.1, 1, 0, results_path=None)