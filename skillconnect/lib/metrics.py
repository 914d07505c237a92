"""
Prometheus-compatible metrics for observability.

Tracks marketplace activity:
- Service-request / booking state transitions (by action)
- Persisted notifications (by type)
- Real-time event deliveries (by event, outcome)

Usage:
    from skillconnect.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_transitions(entity="service_request", action="offer-accepted")
    metrics.increment_notifications(notification_type="offer_accepted")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for SkillConnect.

    Counters:
    - state_transitions_total: labels entity, action
    - notifications_created_total: labels type
    - realtime_events_total: labels event, status (delivered, failed, dropped)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "state_transitions_total": "Total number of service request and booking state transitions",
        "notifications_created_total": "Total number of persisted user notifications",
        "realtime_events_total": "Total number of real-time event deliveries by outcome",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    @staticmethod
    def _get_counter_key(metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def increment_transitions(self, entity: str, action: str, amount: int = 1):
        """Count a state transition on a service request or booking."""
        self._increment(
            "state_transitions_total",
            {"entity": entity.lower(), "action": action.lower()},
            amount,
        )

    def increment_notifications(self, notification_type: str, amount: int = 1):
        """Count persisted notifications."""
        self._increment(
            "notifications_created_total",
            {"type": notification_type.lower()},
            amount,
        )

    def increment_realtime(self, event: str, status: str = "delivered", amount: int = 1):
        """Count real-time deliveries; status is delivered, failed or dropped."""
        self._increment(
            "realtime_events_total",
            {"event": event, "status": status.lower()},
            amount,
        )

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels_dict.items()))
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of a specific counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector singleton."""
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
