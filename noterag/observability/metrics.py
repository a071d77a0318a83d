"""Prometheus metrics for the retrieval pipeline.

Exposed by the API at /metrics.
"""

from prometheus_client import Counter, Gauge, Histogram

EMBEDDING_REQUESTS = Counter(
    "rag_embedding_requests_total",
    "Embedding provider calls",
    ["status"],  # ok, error
)

STORE_BUILDS = Counter(
    "rag_store_builds_total",
    "Vector store builds",
    ["status"],  # ok, error
)

STORE_BUILD_LATENCY = Histogram(
    "rag_store_build_duration_seconds",
    "Time to fetch, chunk and embed one owner's corpus",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

CACHE_LOOKUPS = Counter(
    "rag_store_cache_lookups_total",
    "Store cache lookups",
    ["result"],  # hit, miss
)

CACHED_STORES = Gauge(
    "rag_cached_stores",
    "Vector stores currently resident in the cache",
)

QUERY_LATENCY = Histogram(
    "rag_query_duration_seconds",
    "End-to-end RAG query latency",
    ["mode"],  # buffered, stream
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)

QUERY_ERRORS = Counter(
    "rag_query_errors_total",
    "Failed RAG queries",
    ["mode", "stage"],  # stage: retrieval, generation
)
