"""
Statistics Collector Module

Timing and token accounting for a single chat turn. The measured latency
starts just before input validation and stops once the vendor call has
resolved or failed, so it is recorded for successful and failed turns alike.
"""

import time
from typing import Dict, Any, Optional


class StatisticsCollector:
    """
    Collector for the latency and token usage of one chat turn.

    Attributes:
        start_time (float): perf_counter value when the turn started
        call_end_time (float): perf_counter value when the vendor call settled
        tokens_used (Optional[int]): Tokens reported by the vendor, if any
    """

    def __init__(self):
        self.start_time = None
        self.call_end_time = None
        self.tokens_used = None

    def start_timing(self):
        """Start measuring; call before validating the request."""
        self.start_time = time.perf_counter()

    def mark_call_complete(self, tokens_used: Optional[int] = None):
        """Stop measuring once the vendor call resolved or rejected."""
        self.call_end_time = time.perf_counter()
        self.tokens_used = tokens_used

    @property
    def response_time_ms(self) -> int:
        if self.start_time is None:
            return 0
        end = self.call_end_time if self.call_end_time is not None else time.perf_counter()
        return max(0, int(round((end - self.start_time) * 1000)))

    def get_statistics(self) -> Dict[str, Any]:
        """
        Return the collected measurements.

        Returns:
            Dict[str, Any]: ``response_time_ms`` and ``tokens_used``; empty
            when timing was never started.
        """
        if self.start_time is None:
            return {}

        return {
            "response_time_ms": self.response_time_ms,
            "tokens_used": self.tokens_used
        }
