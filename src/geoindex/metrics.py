"""
Prometheus metrics for monitoring API performance and behavior.
"""
from prometheus_client import Counter, Histogram

# Request metrics
item_writes_total = Counter(
    'item_writes_total',
    'Total number of items written with geo index attributes',
    ['status']
)

query_requests_total = Counter(
    'query_requests_total',
    'Total number of spatial query requests',
    ['query', 'status']
)

# Latency metrics
request_duration_seconds = Histogram(
    'request_duration_seconds',
    'Request latency in seconds',
    ['endpoint']
)

# Covering metrics
covering_cells = Histogram(
    'covering_cells',
    'Number of cells in a query covering',
    ['query'],
    buckets=(1, 2, 4, 8, 15, 25, 50, 100, 250)
)

candidates_per_query = Histogram(
    'candidates_per_query',
    'Number of candidate items returned by the range scans of a query',
    ['query'],
    buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500, 1000)
)

# Redis metrics
redis_operations_total = Counter(
    'redis_operations_total',
    'Total Redis operations',
    ['operation', 'status']
)
