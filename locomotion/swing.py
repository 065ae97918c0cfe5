from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from .settings import STEP_DISTANCE_THRESH


def parabolic_offset(start: np.ndarray, end: np.ndarray, step: float, step_height: float) -> float:
    """Height of the swing arc above the start->end chord at `step` in [0, 1].

    y = (-x^2 + d*x) * m with d = |start - end|, m = 4h / d^2, x = step * d.
    Zero at both ends, `step_height` at the midpoint.
    """
    dist = float(np.linalg.norm(np.asarray(end, dtype=float) - np.asarray(start, dtype=float)))
    if dist <= STEP_DISTANCE_THRESH:
        return 0.0
    m = 4.0 * step_height / (dist * dist)
    x = step * dist
    return (-(x * x) + dist * x) * m


def swing_pose(start: np.ndarray, end: np.ndarray, step: float, axis: int, step_height: float) -> np.ndarray:
    """Linear interpolation on the ground axes, parabola on top of the lerp on `axis`."""
    start = np.asarray(start, dtype=float)
    end = np.asarray(end, dtype=float)
    p = start + (end - start) * step
    p[axis] = parabolic_offset(start, end, step, step_height) + start[axis] + (end[axis] - start[axis]) * step
    return p


@dataclass
class SwingTask:
    """One limb swing, polled by the scheduler.

    The end pose is latched at construction; later changes to the limb target
    do not affect an in-flight swing. A finished task cannot be restarted.
    """
    limb_id: int
    start: np.ndarray
    end: np.ndarray
    duration: float
    axis: int = 2
    step_height: float = 0.5
    on_complete: Optional[Callable[["SwingTask"], None]] = None
    elapsed: float = 0.0
    done: bool = False
    pose: np.ndarray = field(init=False)

    def __post_init__(self):
        self.start = np.asarray(self.start, dtype=float).copy()
        self.end = np.asarray(self.end, dtype=float).copy()
        self.axis = min(max(int(self.axis), 0), 2)
        self.pose = self.start.copy()

    @property
    def degenerate(self) -> bool:
        return (self.duration <= 0.0
                or float(np.linalg.norm(self.end - self.start)) <= STEP_DISTANCE_THRESH)

    @property
    def progress(self) -> float:
        if self.done or self.duration <= 0.0:
            return 1.0
        return min(1.0, self.elapsed / self.duration)

    def step(self, dt: float) -> np.ndarray:
        if self.done:
            raise RuntimeError(f"swing for limb {self.limb_id} already completed")
        self.elapsed += max(0.0, float(dt))
        if self.degenerate or self.elapsed >= self.duration:
            self.pose = self.end.copy()
            self.done = True
            if self.on_complete is not None:
                self.on_complete(self)
            return self.pose
        self.pose = swing_pose(self.start, self.end, self.elapsed / self.duration, self.axis, self.step_height)
        return self.pose


class SwingScheduler:
    """Owned collection of active swing tasks, one per limb at most."""

    def __init__(self):
        self._tasks: Dict[int, SwingTask] = {}

    def start(self, limb_id: int, start: np.ndarray, end: np.ndarray, duration: float, axis: int = 2,
              step_height: float = 0.5, on_complete: Optional[Callable[[SwingTask], None]] = None) -> SwingTask:
        if limb_id in self._tasks:
            raise ValueError(f"limb {limb_id} is already swinging")
        task = SwingTask(limb_id, start, end, float(duration), axis, step_height, on_complete)
        self._tasks[limb_id] = task
        return task

    def tick(self, dt: float) -> List[SwingTask]:
        """Advance every task; returns the tasks that completed this tick."""
        finished: List[SwingTask] = []
        for limb_id, task in list(self._tasks.items()):
            task.step(dt)
            if task.done:
                del self._tasks[limb_id]
                finished.append(task)
        return finished

    def task(self, limb_id: int) -> Optional[SwingTask]:
        return self._tasks.get(limb_id)

    def is_active(self, limb_id: int) -> bool:
        return limb_id in self._tasks

    @property
    def active_ids(self) -> List[int]:
        return sorted(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def clear(self) -> None:
        self._tasks.clear()
