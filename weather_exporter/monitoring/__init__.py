from .metrics import MetricPublisher
from .system_monitor import SystemMonitor

__all__ = ['MetricPublisher', 'SystemMonitor']
