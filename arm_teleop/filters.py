"""
Noise filtering and motion smoothing.

Two stages sit between the angle mapper and the deadband gate:
- NoiseFilter: per-joint moving average over the last N raw angles
- MotionSmoother: exponential ease of the commanded pose toward the target
"""

from collections import deque
from typing import Deque, Dict, Iterable

JOINTS = ("base", "shoulder", "elbow")


class MovingAverage:
    """Bounded FIFO whose output is the mean of its contents."""

    def __init__(self, size: int = 3):
        if size < 1:
            raise ValueError(f"window size must be >= 1, got {size}")
        self._window: Deque[float] = deque(maxlen=size)

    @property
    def size(self) -> int:
        return self._window.maxlen

    def __len__(self) -> int:
        return len(self._window)

    def push(self, value: float) -> float:
        """Append a sample (evicting the oldest when full) and return the mean."""
        self._window.append(value)
        return self.value

    @property
    def value(self) -> float:
        if not self._window:
            raise ValueError("empty window has no average")
        return sum(self._window) / len(self._window)

    def clear(self) -> None:
        self._window.clear()

    def resize(self, size: int) -> None:
        """Change the window size, keeping the newest samples."""
        if size == self.size:
            return
        if size < 1:
            raise ValueError(f"window size must be >= 1, got {size}")
        self._window = deque(self._window, maxlen=size)


class NoiseFilter:
    """
    One moving-average window per joint.

    Right after a reset the window is under-full, so the first few outputs
    average fewer samples and follow the hand more closely.
    """

    def __init__(self, size: int = 3, joints: Iterable[str] = JOINTS):
        self.windows: Dict[str, MovingAverage] = {j: MovingAverage(size) for j in joints}

    @property
    def size(self) -> int:
        return next(iter(self.windows.values())).size

    def resize(self, size: int) -> None:
        for window in self.windows.values():
            window.resize(size)

    def update(self, raw: Dict[str, float]) -> Dict[str, float]:
        """Push one raw angle per joint and return the filtered angles."""
        return {joint: self.windows[joint].push(value) for joint, value in raw.items()}

    def clear(self) -> None:
        """Empty every window at once."""
        for window in self.windows.values():
            window.clear()

    def fill_levels(self) -> Dict[str, int]:
        return {joint: len(window) for joint, window in self.windows.items()}


class MotionSmoother:
    """
    Exponential ease toward the target.

    Each tick moves every joint ``alpha`` of the way to its target, which
    bounds how fast the commanded pose can change.
    """

    def __init__(self, alpha: float = 0.1):
        self.alpha = alpha

    @property
    def alpha(self) -> float:
        return self._alpha

    @alpha.setter
    def alpha(self, value: float) -> None:
        if not 0.0 < value <= 1.0:
            raise ValueError(f"alpha must be in (0, 1], got {value}")
        self._alpha = value

    def step(self, current: float, target: float) -> float:
        return current + (target - current) * self.alpha

    def apply(self, current, target) -> None:
        """Ease ``current`` toward ``target`` in place (base, shoulder, elbow)."""
        current.base = self.step(current.base, target.base)
        current.shoulder = self.step(current.shoulder, target.shoulder)
        current.elbow = self.step(current.elbow, target.elbow)
