"""Timing of git, ssh and forge operations."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, List, Optional

SLOW_OPERATION_SECONDS = 30.0


@dataclass
class PerformanceMetrics:
    """Timing of a single operation."""
    operation: str
    duration: float
    start_time: float
    end_time: float
    context: Optional[Dict[str, Any]] = None
    success: bool = True


class PerformanceLogger:
    """
    Collects timings for the operations of one run.

    Messages go to DEBUG by default so they never mix with the report
    unless verbose logging was requested.
    """

    def __init__(self, logger_name: str = 'reposync.git_sync.performance'):
        self.logger = logging.getLogger(logger_name)
        self._metrics: List[PerformanceMetrics] = []

    @contextmanager
    def time_operation(
        self,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        log_level: int = logging.DEBUG
    ) -> Generator[None, None, None]:
        """
        Context manager for timing operations.

        Args:
            operation: Name of the operation being timed
            context: Additional context information
            log_level: Logging level for performance messages
        """
        start_time = time.time()
        self.logger.log(log_level, f"Starting {operation}")

        success = True
        try:
            yield
        except BaseException as e:
            success = False
            self.logger.log(log_level, f"{operation} failed after {time.time() - start_time:.3f}s: {e}")
            raise
        finally:
            end_time = time.time()
            duration = end_time - start_time
            self._metrics.append(PerformanceMetrics(
                operation=operation,
                duration=duration,
                start_time=start_time,
                end_time=end_time,
                context=context,
                success=success
            ))

            if success:
                self.logger.log(log_level, f"{operation} completed in {duration:.3f}s")
                if context:
                    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
                    self.logger.debug(f"{operation} context: {context_str}")
            if duration > SLOW_OPERATION_SECONDS:
                self.logger.warning(f"Slow operation: '{operation}' took {duration:.3f}s")

    def get_performance_summary(self) -> Dict[str, Any]:
        """Aggregate the timings collected so far."""
        if not self._metrics:
            return {"total_operations": 0, "average_duration": 0.0}

        total_operations = len(self._metrics)
        total_duration = sum(m.duration for m in self._metrics)
        successful_ops = sum(1 for m in self._metrics if m.success)
        slowest_op = max(self._metrics, key=lambda m: m.duration)

        return {
            "total_operations": total_operations,
            "total_duration": total_duration,
            "average_duration": total_duration / total_operations,
            "success_rate": successful_ops / total_operations,
            "slowest_operation": {
                "name": slowest_op.operation,
                "duration": slowest_op.duration
            }
        }

    def log_performance_summary(self) -> None:
        summary = self.get_performance_summary()

        if summary["total_operations"] == 0:
            self.logger.debug("No performance metrics available")
            return

        slowest = summary["slowest_operation"]
        self.logger.info(
            f"{summary['total_operations']} operations in {summary['total_duration']:.1f}s, "
            f"{summary['success_rate']:.1%} succeeded, slowest: {slowest['name']} ({slowest['duration']:.3f}s)"
        )
