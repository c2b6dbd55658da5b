import time
from collections import Counter, deque
from typing import Dict

import psutil

RESPONSE_TIME_WINDOW = 50


class SystemMonitor:
    """Process-side bookkeeping for the exporter's own HTTP surface.

    Nothing here looks at upstream fetch results: the process is live as long
    as it can answer, even when every location is serving stale data.
    """

    def __init__(self):
        self.start_time = time.time()
        self.response_times = deque(maxlen=RESPONSE_TIME_WINDOW)
        self.requests = Counter()
        self.errors = Counter()

    def record_request(self, endpoint: str, response_time: float, status_code: int):
        self.requests[endpoint] += 1
        self.response_times.append(response_time)
        if status_code >= 500:
            self.errors[endpoint] += 1

    def get_system_health(self):
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        avg_response_time = sum(self.response_times) / len(self.response_times) if self.response_times else 0

        return {
            'uptime_seconds': int(time.time() - self.start_time),
            'memory_usage_mb': f"{memory_mb:.1f}",
            'total_requests': sum(self.requests.values()),
            'error_count': sum(self.errors.values()),
            'avg_response_time_ms': f"{avg_response_time * 1000:.2f}"
        }

    def get_endpoint_stats(self, limit: int = 20) -> Dict:
        return {
            endpoint: {'count': count, 'errors': self.errors[endpoint]}
            for endpoint, count in self.requests.most_common(limit)
        }
