"""
Read-side aggregation over the interaction log.

Per-bot statistics for the dashboard, and the system-wide health snapshot
served by ``/api/system/health`` and pushed over ``/ws``.
"""

import platform
import time
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional

import psutil

from ..core.logging import logger
from ..db.database import Database
from ..db.models import ChatInteraction, utcnow
from ..db.storage import Storage


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def summarize_interactions(interactions: Iterable[ChatInteraction]) -> Dict[str, Any]:
    """Aggregate a bot's interaction history.

    Average response time is 0 for an empty history; missing or non-numeric
    token counts add 0. ``usageByDay`` is ordered by ascending date.
    """
    total = 0
    successful = 0
    response_time_sum = 0
    tokens = 0
    per_day: Counter = Counter()

    for interaction in interactions:
        total += 1
        if interaction.success:
            successful += 1
        response_time_sum += _as_number(interaction.response_time_ms)
        tokens += _as_number(interaction.tokens_used)
        if interaction.created_at is not None:
            per_day[interaction.created_at.strftime("%Y-%m-%d")] += 1

    return {
        "totalInteractions": total,
        "successfulInteractions": successful,
        "averageResponseTime": round(response_time_sum / total) if total else 0,
        "totalTokensUsed": int(tokens),
        "usageByDay": [{"date": day, "interactions": per_day[day]} for day in sorted(per_day)],
    }


class AnalyticsService:
    def __init__(self, storage: Storage, database: Database, window_seconds: int = 3600):
        self.storage = storage
        self.database = database
        self.window_seconds = window_seconds
        self.process = psutil.Process()

    async def bot_analytics(self, bot_id: int) -> Dict[str, Any]:
        interactions = await self.storage.list_interactions(bot_id=bot_id)
        return summarize_interactions(interactions)

    async def api_metrics(self) -> Dict[str, Any]:
        """Request totals over the trailing window (one hour by default)."""
        since = utcnow() - timedelta(seconds=self.window_seconds)
        interactions = await self.storage.list_interactions(since=since)

        total = len(interactions)
        errors = sum(1 for interaction in interactions if not interaction.success)
        latency = sum(_as_number(interaction.response_time_ms) for interaction in interactions)

        return {
            "totalRequests": total,
            "errorCount": errors,
            "averageResponseTime": round(latency / total, 2) if total else 0,
            "errorRate": round(errors / total * 100, 2) if total else 0,
        }

    async def database_status(self) -> Dict[str, Any]:
        try:
            await self.database.ping()
            return {"status": "connected", "healthy": True}
        except Exception as e:
            logger.error(f"Database health check failed: {e}", extra_fields={"error_type": type(e).__name__})
            return {"status": "error", "healthy": False, "error": str(e)}

    def system_metrics(self) -> Dict[str, Any]:
        memory = psutil.virtual_memory()
        return {
            "cpuUsage": psutil.cpu_percent(interval=None),
            "totalMemory": memory.total,
            "freeMemory": memory.available,
            "uptime": int(time.time() - psutil.boot_time()),
            "platform": platform.system().lower(),
        }

    def process_metrics(self) -> Dict[str, Any]:
        memory = self.process.memory_info()
        return {
            "memoryUsage": {"rss": memory.rss, "vms": memory.vms},
            "uptime": int(time.time() - self.process.create_time()),
        }

    async def system_health(self) -> Dict[str, Any]:
        database = await self.database_status()
        api: Optional[Dict[str, Any]] = None
        if database["healthy"]:
            try:
                api = await self.api_metrics()
            except Exception as e:
                logger.error(f"Failed to aggregate API metrics: {e}", extra_fields={"error_type": type(e).__name__})
        if api is None:
            api = {"totalRequests": 0, "errorCount": 0, "averageResponseTime": 0, "errorRate": 0}

        return {
            "system": self.system_metrics(),
            "process": self.process_metrics(),
            "api": api,
            "database": database,
            "timestamp": utcnow().isoformat() + "Z",
        }
