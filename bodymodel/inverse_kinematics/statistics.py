# Copyright 2024 The HuggingFace Inc. team. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Convergence Statistics

Running counters over all IK solve calls, used to evaluate and tune the
solver settings offline. The solver logic never reads them.
"""

import logging
import threading
from typing import Dict

NO_DATA = -1.0


class ConvergenceStatistics:
    """Accumulates the outcome of every terminated solve call"""

    def __init__(self):
        self._lock = threading.Lock()
        self.total_calls = 0
        self.sum_iterations = 0
        self.sum_reached = 0
        self.sum_error = 0.0
        self.min_error = float("inf")
        self.max_error = float("-inf")

    def record(self, iterations: int, reached: bool, error: float):
        """
        Add one solve outcome

        Args:
            iterations: Step index at which the solve terminated
            reached: Whether the error fell below the threshold
            error: Final pose error
        """
        with self._lock:
            self.total_calls += 1
            self.sum_iterations += iterations
            self.sum_reached += 1 if reached else 0
            self.sum_error += error
            self.min_error = min(self.min_error, error)
            self.max_error = max(self.max_error, error)

    def get_total_calls(self) -> int:
        with self._lock:
            return self.total_calls

    def get_average_iterations(self) -> float:
        return self._mean("sum_iterations")

    def get_average_reach_rate(self) -> float:
        return self._mean("sum_reached")

    def get_average_error(self) -> float:
        return self._mean("sum_error")

    def get_min_error(self) -> float:
        with self._lock:
            return self.min_error if self.total_calls else NO_DATA

    def get_max_error(self) -> float:
        with self._lock:
            return self.max_error if self.total_calls else NO_DATA

    def _mean(self, counter: str) -> float:
        with self._lock:
            if self.total_calls == 0:
                return NO_DATA
            return float(getattr(self, counter)) / self.total_calls

    def summary(self) -> Dict:
        """All accessors in one dictionary, read under a single lock"""
        with self._lock:
            calls = self.total_calls
            if calls == 0:
                return {
                    "total_calls": 0,
                    "average_iterations": NO_DATA,
                    "average_reach_rate": NO_DATA,
                    "average_error": NO_DATA,
                    "min_error": NO_DATA,
                    "max_error": NO_DATA,
                }
            return {
                "total_calls": calls,
                "average_iterations": float(self.sum_iterations) / calls,
                "average_reach_rate": float(self.sum_reached) / calls,
                "average_error": self.sum_error / calls,
                "min_error": self.min_error,
                "max_error": self.max_error,
            }

    def log_summary(self):
        stats = self.summary()
        if stats["total_calls"] == 0:
            logging.info("IK statistics: no solve calls recorded")
            return

        logging.info(
            f"IK statistics: {stats['total_calls']} calls, "
            f"{stats['average_iterations']:.2f} iterations (mean), "
            f"{stats['average_reach_rate'] * 100:.1f}% reached, "
            f"error mean {stats['average_error']:.4f} "
            f"min {stats['min_error']:.4f} max {stats['max_error']:.4f}"
        )
