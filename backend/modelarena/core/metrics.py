"""Prometheus metrics for the generation pipeline"""
from prometheus_client import Counter, Histogram, REGISTRY


def _counter(name, documentation, labelnames=()):
    try:
        return Counter(name, documentation, labelnames)
    except ValueError:
        # Already registered (module re-imported, e.g. in tests)
        return REGISTRY._names_to_collectors.get(name)


def _histogram(name, documentation, labelnames=(), buckets=Histogram.DEFAULT_BUCKETS):
    try:
        return Histogram(name, documentation, labelnames, buckets=buckets)
    except ValueError:
        return REGISTRY._names_to_collectors.get(name)


generation_jobs_counter = _counter(
    'modelarena_generation_jobs_total',
    'Total number of generation job attempts by outcome',
    ['status']
)

generation_seconds_histogram = _histogram(
    'modelarena_generation_seconds',
    'Vendor-side generation wall-clock time in seconds',
    ['provider'],
    buckets=(5, 15, 30, 60, 120, 180, 300, 450, 600, 900)
)

generation_cost_counter = _counter(
    'modelarena_generation_cost_usd_total',
    'Accumulated computed generation cost in USD',
    ['provider']
)

pricing_errors_counter = _counter(
    'modelarena_pricing_errors_total',
    'Number of generations completed without a usable pricing result'
)
