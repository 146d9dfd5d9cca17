"""Wall-clock timers, per-phase accumulators and the CSV results log."""

from __future__ import annotations

import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

CSV_HEADER = (
    "num_samples,num_iterations,learning_rate,train_accuracy,test_accuracy,"
    "training_time_sec,num_threads,num_processes,forward_time_ms,backward_time_ms,"
    "update_time_ms,cost_time_ms,accuracy_time_ms,avg_forward_ms,avg_backward_ms,"
    "avg_update_ms"
)


@dataclass
class Timer:
    """Measures the time between ``start`` and ``stop`` on a monotonic clock."""

    elapsed_ms: float = 0.0
    _started_at: float | None = field(default=None, init=False, repr=False)

    def start(self) -> Timer:
        """Start (or restart) the timer."""
        self._started_at = time.perf_counter()
        return self

    def stop(self) -> float:
        """Stop the timer and return the elapsed milliseconds."""
        if self._started_at is None:
            raise RuntimeError("timer stopped before it was started")
        self.elapsed_ms = (time.perf_counter() - self._started_at) * 1000.0
        return self.elapsed_ms

    def __enter__(self) -> Timer:
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


@dataclass
class TimerAccumulator:
    """Running total of the time spent in one phase."""

    label: str
    total_ms: float = 0.0
    count: int = 0

    def add(self, elapsed_ms: float) -> None:
        """Record one measurement."""
        self.total_ms += elapsed_ms
        self.count += 1

    def average_ms(self) -> float:
        """Mean time per measurement, or 0 when nothing was recorded."""
        return self.total_ms / self.count if self.count > 0 else 0.0

    def __str__(self) -> str:
        return (
            f"[TOTAL] {self.label:<30}: {self.total_ms:10.3f} ms "
            f"(avg: {self.average_ms():.3f} ms, count: {self.count})"
        )


@dataclass
class TimingStats:
    """Accumulators for every phase of training."""

    forward: TimerAccumulator = field(default_factory=lambda: TimerAccumulator("Forward Pass"))
    backward: TimerAccumulator = field(default_factory=lambda: TimerAccumulator("Backward Pass"))
    update: TimerAccumulator = field(default_factory=lambda: TimerAccumulator("Parameter Update"))
    cost: TimerAccumulator = field(default_factory=lambda: TimerAccumulator("Cost Computation"))
    accuracy: TimerAccumulator = field(
        default_factory=lambda: TimerAccumulator("Accuracy Computation")
    )

    def summary(self) -> str:
        """Human-readable report of all phases and the training-loop total."""
        phases = (self.forward, self.backward, self.update, self.cost, self.accuracy)
        loop_total = (
            self.forward.total_ms + self.backward.total_ms
            + self.update.total_ms + self.cost.total_ms
        )
        lines = ["", "========== TIMING SUMMARY =========="]
        lines.extend(str(phase) for phase in phases)
        lines.append("------------------------------------")
        lines.append(f"[TOTAL] {'Training Loop':<30}: {loop_total:10.3f} ms")
        lines.append("========================================")
        lines.append("")
        return "\n".join(lines)


def log_results_to_csv(
    path: str | os.PathLike[str],
    stats: TimingStats,
    num_samples: int,
    num_iterations: int,
    learning_rate: float,
    train_accuracy: float,
    test_accuracy: float,
    training_time_sec: float,
    num_threads: int,
    num_processes: int,
) -> None:
    """Append one result row to ``path``, writing the header if it is new.

    A file that cannot be opened is reported on stderr and skipped.
    """
    path = Path(path)
    is_new = not path.exists()
    row = ",".join(
        [
            f"{num_samples:d}",
            f"{num_iterations:d}",
            f"{learning_rate:.6f}",
            f"{train_accuracy:.2f}",
            f"{test_accuracy:.2f}",
            f"{training_time_sec:.3f}",
            f"{num_threads:d}",
            f"{num_processes:d}",
            f"{stats.forward.total_ms:.3f}",
            f"{stats.backward.total_ms:.3f}",
            f"{stats.update.total_ms:.3f}",
            f"{stats.cost.total_ms:.3f}",
            f"{stats.accuracy.total_ms:.3f}",
            f"{stats.forward.average_ms():.3f}",
            f"{stats.backward.average_ms():.3f}",
            f"{stats.update.average_ms():.3f}",
        ]
    )
    try:
        with path.open("a", encoding="ascii", newline="") as handle:
            if is_new:
                handle.write(CSV_HEADER + "\n")
            handle.write(row + "\n")
    except OSError:
        print(f"Warning: Could not open {path} for writing", file=sys.stderr)
        return
    print(f"Results logged to {path}")