"""Performance profiler for export and import runs."""

import json
import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional

import psutil


@dataclass
class TransferMetrics:
    """Performance metrics for one transfer operation."""
    operation_name: str
    start_time: float
    end_time: float
    duration: float
    bytes_processed: int
    entries_processed: int
    memory_peak_mb: float
    memory_start_mb: float
    memory_end_mb: float
    cpu_percent: float
    throughput_mbps: float
    entries_per_second: float


def _rss_mb() -> float:
    return psutil.Process().memory_info().rss / 1024 / 1024


class ProfilingSession:
    """
    Measurements of a single profiled operation.

    Every run gets its own session, so overlapping runs never share counters.
    """

    def __init__(self, operation_name: str, logger: Optional[logging.Logger] = None):
        """
        Start measuring an operation.

        Args:
            operation_name: Name of the operation
            logger: Optional logger instance
        """
        self.operation_name = operation_name
        self.logger = logger or logging.getLogger(__name__)
        self.start_time = time.time()
        self.start_memory = _rss_mb()
        self.peak_memory = self.start_memory
        self.cpu_samples: List[float] = []
        self.bytes_processed = 0
        self.entries_processed = 0
        self.finished = False

        self.logger.debug(f"Started profiling: {operation_name}")

    def record(self, bytes_processed: int = 0, entries_processed: int = 0) -> None:
        """Add processed bytes/entries to the operation and sample."""
        self.bytes_processed += bytes_processed
        self.entries_processed += entries_processed
        self.sample_performance()

    def sample_performance(self) -> None:
        """Sample current performance metrics."""
        if self.finished:
            return

        try:
            process = psutil.Process()
            current_memory = process.memory_info().rss / 1024 / 1024  # MB
            cpu_percent = process.cpu_percent()

            self.peak_memory = max(self.peak_memory, current_memory)
            self.cpu_samples.append(cpu_percent)

        except psutil.Error as e:
            self.logger.warning(f"Performance sampling failed: {e}")

    def finish(self) -> TransferMetrics:
        """
        Stop measuring and return metrics.

        Returns:
            TransferMetrics object with collected data

        Raises:
            ValueError: If the session was already finished
        """
        if self.finished:
            raise ValueError(f"Profiling session {self.operation_name!r} already finished")
        self.finished = True

        end_time = time.time()
        duration = end_time - self.start_time

        try:
            end_memory = _rss_mb()
        except psutil.Error:
            end_memory = self.start_memory
        avg_cpu = sum(self.cpu_samples) / len(self.cpu_samples) if self.cpu_samples else 0

        throughput = (self.bytes_processed / 1024 / 1024) / duration if duration > 0 else 0  # MB/s
        entry_rate = self.entries_processed / duration if duration > 0 else 0

        return TransferMetrics(
            operation_name=self.operation_name,
            start_time=self.start_time,
            end_time=end_time,
            duration=duration,
            bytes_processed=self.bytes_processed,
            entries_processed=self.entries_processed,
            memory_peak_mb=self.peak_memory,
            memory_start_mb=self.start_memory,
            memory_end_mb=end_memory,
            cpu_percent=avg_cpu,
            throughput_mbps=throughput,
            entries_per_second=entry_rate
        )


class TransferProfiler:
    """
    Profiler for monitoring memory, CPU and throughput of transfers.

    Streaming runs should keep memory flat regardless of store size; the
    peak RSS recorded here is how that is checked in practice. The profiler
    itself only keeps the history of finished runs.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the profiler.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.metrics_history: List[TransferMetrics] = []

    @contextmanager
    def profile_operation(self, operation_name: str) -> Iterator[ProfilingSession]:
        """
        Context manager for profiling operations.

        Args:
            operation_name: Name of the operation being profiled
        """
        session = self.start_profiling(operation_name)
        try:
            yield session
        finally:
            self.stop_profiling(session)

    def start_profiling(self, operation_name: str) -> ProfilingSession:
        """
        Start profiling an operation.

        Args:
            operation_name: Name of the operation

        Returns:
            The session to record progress on
        """
        return ProfilingSession(operation_name, self.logger)

    def stop_profiling(self, session: ProfilingSession) -> TransferMetrics:
        """
        Finish a session and add its metrics to the history.

        Returns:
            TransferMetrics object with collected data
        """
        metrics = session.finish()
        self.metrics_history.append(metrics)

        self.logger.info(f"Performance Summary - {metrics.operation_name}:")
        self.logger.info(f"  Duration: {metrics.duration:.2f}s")
        self.logger.info(f"  Entries: {metrics.entries_processed} ({metrics.entries_per_second:.0f}/s)")
        self.logger.info(f"  Throughput: {metrics.throughput_mbps:.2f} MB/s")
        self.logger.info(f"  Memory Peak: {metrics.memory_peak_mb:.1f} MB")

        return metrics

    def get_performance_summary(self) -> Dict[str, Any]:
        """
        Get summary of all recorded operations.

        Returns:
            Dictionary with performance summary
        """
        if not self.metrics_history:
            return {"total_operations": 0}

        count = len(self.metrics_history)
        return {
            "total_operations": count,
            "total_duration": sum(m.duration for m in self.metrics_history),
            "total_entries": sum(m.entries_processed for m in self.metrics_history),
            "total_mb": sum(m.bytes_processed for m in self.metrics_history) / 1024 / 1024,
            "average_throughput_mbps": sum(m.throughput_mbps for m in self.metrics_history) / count,
            "max_memory_peak_mb": max(m.memory_peak_mb for m in self.metrics_history),
        }

    def export_metrics(self, format: str = "json") -> str:
        """
        Export recorded metrics.

        Args:
            format: Export format ("json" or "csv")

        Returns:
            Formatted metrics string
        """
        if format == "json":
            return json.dumps([asdict(m) for m in self.metrics_history], indent=2)

        elif format == "csv":
            lines = ["operation,duration,bytes_processed,entries_processed,memory_peak_mb,throughput_mbps"]
            for m in self.metrics_history:
                lines.append(f"{m.operation_name},{m.duration},{m.bytes_processed},"
                             f"{m.entries_processed},{m.memory_peak_mb},{m.throughput_mbps}")
            return "\n".join(lines)

        else:
            raise ValueError(f"Unsupported export format: {format}")
