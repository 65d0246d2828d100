"""
Metrics collection for drivedav
"""

import time
import threading
from typing import Dict, Any
from dataclasses import dataclass, field


@dataclass
class Metrics:
    """Application metrics container"""

    # Request metrics
    total_requests: int = 0
    requests_by_method: Dict[str, int] = field(default_factory=dict)
    requests_by_status: Dict[int, int] = field(default_factory=dict)
    total_response_time: float = 0.0

    # Transfer metrics
    total_upload_bytes: int = 0
    total_download_bytes: int = 0

    # Error metrics
    total_errors: int = 0

    # Startup time
    startup_time: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary"""
        uptime = time.time() - self.startup_time
        avg = self.total_response_time / self.total_requests if self.total_requests else 0.0

        return {
            "uptime_seconds": uptime,
            "requests": {
                "total": self.total_requests,
                "by_method": self.requests_by_method.copy(),
                "by_status": self.requests_by_status.copy(),
                "avg_response_time": avg,
            },
            "transfer": {
                "upload_bytes": self.total_upload_bytes,
                "download_bytes": self.total_download_bytes,
            },
            "errors": {
                "total": self.total_errors,
            },
        }


class MetricsManager:
    """Thread-safe metrics manager"""

    def __init__(self):
        self.metrics = Metrics()
        self._lock = threading.Lock()

    def record_request(self, method: str, status_code: int, response_time: float):
        """Record one finished request"""
        with self._lock:
            self.metrics.total_requests += 1
            self.metrics.requests_by_method[method] = self.metrics.requests_by_method.get(method, 0) + 1
            self.metrics.requests_by_status[status_code] = self.metrics.requests_by_status.get(status_code, 0) + 1
            self.metrics.total_response_time += response_time

    def add_upload_bytes(self, bytes_count: int):
        """Add to upload byte counter"""
        with self._lock:
            self.metrics.total_upload_bytes += bytes_count

    def add_download_bytes(self, bytes_count: int):
        """Add to download byte counter"""
        with self._lock:
            self.metrics.total_download_bytes += bytes_count

    def increment_errors(self):
        """Increment error counter"""
        with self._lock:
            self.metrics.total_errors += 1

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics snapshot"""
        with self._lock:
            return self.metrics.to_dict()

    def reset_metrics(self):
        """Reset all metrics (for testing)"""
        with self._lock:
            self.metrics = Metrics()


# Global metrics manager instance
metrics_manager = MetricsManager()
