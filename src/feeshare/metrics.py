"""
feeshare/metrics.py

Prometheus metrics for the distribution engine.

Counts runs, skipped ticks, distributions and buybacks, and exposes them
in Prometheus text format.
"""

import time
import logging
from typing import Dict, Any, Optional

from .rpc.client import lamports_to_sol

logger = logging.getLogger("feeshare.metrics")


class EngineMetrics:
    """
    Prometheus metrics collector for the fee-sharing engine.

    Usage:
        metrics = EngineMetrics()
        scheduler = DistributionScheduler(..., metrics=metrics)

        # Get metrics in Prometheus format
        prometheus_output = metrics.collect()
    """

    # Metric definitions
    METRICS = {
        "feeshare_runs_total": {
            "type": "counter",
            "help": "Total number of completed distribution runs",
        },
        "feeshare_runs_skipped_total": {
            "type": "counter",
            "help": "Runs skipped because another run was in progress",
        },
        "feeshare_tokens_checked_total": {
            "type": "counter",
            "help": "Total assets examined by distribution runs",
        },
        "feeshare_distributions_total": {
            "type": "counter",
            "help": "Distribution attempts by outcome",
        },
        "feeshare_distributed_lamports_total": {
            "type": "counter",
            "help": "Total lamports distributed to shareholders",
        },
        "feeshare_buybacks_total": {
            "type": "counter",
            "help": "Buyback attempts by outcome",
        },
        "feeshare_tokens_burned_total": {
            "type": "counter",
            "help": "Total tokens burned by buybacks (base units)",
        },
        "feeshare_last_run_duration_seconds": {
            "type": "gauge",
            "help": "Duration of the most recent run",
        },
        "feeshare_last_run_timestamp": {
            "type": "gauge",
            "help": "Unix time the most recent run finished",
        },
        "feeshare_uptime_seconds": {
            "type": "counter",
            "help": "Engine uptime in seconds",
        },
    }

    def __init__(self):
        self._start_time = time.time()
        self.reset_counters()

    def record_run(self, tokens_checked: int, duration_seconds: float) -> None:
        self._runs += 1
        self._tokens_checked += tokens_checked
        self._last_run_duration = duration_seconds
        self._last_run_timestamp = time.time()

    def record_skipped_run(self) -> None:
        self._runs_skipped += 1

    def record_distribution(self, success: bool, lamports: int = 0) -> None:
        if success:
            self._distributions_ok += 1
            self._distributed_lamports += lamports
        else:
            self._distributions_failed += 1

    def record_buyback(self, success: bool, tokens_burned: int = 0) -> None:
        if success:
            self._buybacks_ok += 1
            self._tokens_burned += tokens_burned
        else:
            self._buybacks_failed += 1

    def collect(self) -> str:
        """
        Collect all metrics and return in Prometheus format.

        Returns:
            Prometheus-formatted metrics string
        """
        lines = []

        def add_metric(name: str, samples: Dict[Optional[str], float]):
            metric_def = self.METRICS.get(name, {})
            lines.append(f"# HELP {name} {metric_def.get('help', '')}")
            lines.append(f"# TYPE {name} {metric_def.get('type', 'gauge')}")
            for result, value in samples.items():
                if result is None:
                    lines.append(f"{name} {value}")
                else:
                    lines.append(f'{name}{{result="{result}"}} {value}')

        add_metric("feeshare_runs_total", {None: self._runs})
        add_metric("feeshare_runs_skipped_total", {None: self._runs_skipped})
        add_metric("feeshare_tokens_checked_total", {None: self._tokens_checked})
        add_metric("feeshare_distributions_total", {
            "success": self._distributions_ok,
            "failure": self._distributions_failed,
        })
        add_metric("feeshare_distributed_lamports_total", {None: self._distributed_lamports})
        add_metric("feeshare_buybacks_total", {
            "success": self._buybacks_ok,
            "failure": self._buybacks_failed,
        })
        add_metric("feeshare_tokens_burned_total", {None: self._tokens_burned})
        add_metric("feeshare_last_run_duration_seconds", {None: self._last_run_duration})
        add_metric("feeshare_last_run_timestamp", {None: self._last_run_timestamp})
        add_metric("feeshare_uptime_seconds", {None: time.time() - self._start_time})

        return "\n".join(lines) + "\n"

    def get_stats(self) -> Dict[str, Any]:
        """
        Get metrics as a dictionary (for JSON output).
        """
        return {
            "runs": self._runs,
            "runs_skipped": self._runs_skipped,
            "tokens_checked": self._tokens_checked,
            "distributions_succeeded": self._distributions_ok,
            "distributions_failed": self._distributions_failed,
            "distributed_sol": lamports_to_sol(self._distributed_lamports),
            "buybacks_succeeded": self._buybacks_ok,
            "buybacks_failed": self._buybacks_failed,
            "tokens_burned": self._tokens_burned,
            "last_run_duration_seconds": self._last_run_duration,
            "uptime_seconds": time.time() - self._start_time,
        }

    def reset_counters(self) -> None:
        """Reset all counters (useful for testing)."""
        self._runs = 0
        self._runs_skipped = 0
        self._tokens_checked = 0
        self._distributions_ok = 0
        self._distributions_failed = 0
        self._distributed_lamports = 0
        self._buybacks_ok = 0
        self._buybacks_failed = 0
        self._tokens_burned = 0
        self._last_run_duration = 0.0
        self._last_run_timestamp = 0.0
