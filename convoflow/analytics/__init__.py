from .aggregator import aggregate_daily, run_nightly_aggregation

__all__ = ["aggregate_daily", "run_nightly_aggregation"]
