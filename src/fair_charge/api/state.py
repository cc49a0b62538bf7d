from typing import Any, Dict, Optional
import threading
import time

# Global Pipeline State
pipeline: Any = None  # Instance of fair_charge.pipeline.Pipeline
pipeline_error: Optional[str] = None
started_at = time.time()

# Verdict Stats (for monitoring)
verdict_stats: Dict[str, Any] = {
    'total_verdicts': 0,
    'by_status': {},
    'flagged_input_count': 0,
    'keyword_only_count': 0,
    'last_verdict_time': None,
}
stats_lock = threading.Lock()

# Metrics
REQUEST_COUNT: Any = None
REQUEST_LATENCY: Any = None
VERDICTS_TOTAL: Any = None


def update_verdict_stats(status: str, flagged: bool = False, retrieval_mode: str = 'semantic') -> None:
    """Update verdict statistics for monitoring."""
    with stats_lock:
        verdict_stats['total_verdicts'] = int(verdict_stats.get('total_verdicts') or 0) + 1
        by_status = verdict_stats['by_status']
        by_status[status] = by_status.get(status, 0) + 1
        verdict_stats['last_verdict_time'] = time.time()
        if flagged:
            verdict_stats['flagged_input_count'] = int(verdict_stats.get('flagged_input_count') or 0) + 1
        if retrieval_mode != 'semantic':
            verdict_stats['keyword_only_count'] = int(verdict_stats.get('keyword_only_count') or 0) + 1
    if VERDICTS_TOTAL is not None:
        VERDICTS_TOTAL.labels(status).inc()


def snapshot_verdict_stats() -> Dict[str, Any]:
    with stats_lock:
        out = dict(verdict_stats)
        out['by_status'] = dict(verdict_stats['by_status'])
        return out
