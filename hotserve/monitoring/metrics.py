import time
import threading
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List
import numpy as np

class MetricsTracker:
    """Rolling build and reload timings for the status endpoint"""

    def __init__(self, window: int = 200):
        self.window = window
        self.metrics: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=self.window))
        self.counters: Dict[str, int] = defaultdict(int)
        self.errors: Dict[str, List[str]] = defaultdict(list)
        self._lock = threading.Lock()

    @staticmethod
    def time() -> float:
        return time.perf_counter()

    def record(self, name: str, value: float):
        """Record one sample of a timing or size metric"""
        with self._lock:
            self.metrics[name].append(float(value))
            self.counters[name] += 1

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            self.counters[name] += amount

    def record_error(self, name: str, message: str):
        with self._lock:
            self.counters[name] += 1
            errors = self.errors[name]
            errors.append(message)
            del errors[:-self.window]

    def summary(self) -> Dict[str, Any]:
        """Count, mean, p95 and last value per metric"""
        with self._lock:
            samples = {name: np.array(values) for name, values in self.metrics.items() if values}
            counters = dict(self.counters)
            errors = {name: list(messages[-5:]) for name, messages in self.errors.items()}

        stats = {
            name: {
                'count': counters.get(name, len(values)),
                'mean': float(np.mean(values)),
                'p95': float(np.percentile(values, 95)),
                'last': float(values[-1])
            }
            for name, values in samples.items()
        }
        return {'stats': stats, 'counters': counters, 'recent_errors': errors}
