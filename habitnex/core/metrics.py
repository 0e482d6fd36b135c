"""Prometheus metrics for the AI pipelines.

Counters live in the default registry and are scraped from ``/metrics``.
"""

from prometheus_client import Counter, Histogram

ai_requests = Counter(
    "habitnex_ai_requests_total",
    "AI endpoint requests by outcome (success, cached, error)",
    ["endpoint", "outcome"],
)
cache_lookups = Counter(
    "habitnex_cache_lookups_total",
    "Response cache lookups by result (hit, miss)",
    ["endpoint", "result"],
)
ai_tokens = Counter(
    "habitnex_ai_tokens_total",
    "Model tokens consumed",
    ["endpoint", "direction"],
)
ai_cost = Counter(
    "habitnex_ai_cost_usd_total",
    "Estimated model spend in USD",
    ["endpoint"],
)
ai_call_latency = Histogram(
    "habitnex_ai_call_seconds",
    "Model call latency in seconds",
    ["endpoint"],
)
request_latency = Histogram(
    "habitnex_request_seconds",
    "Pipeline latency from request to tracked outcome in seconds",
    ["endpoint"],
)


def request_outcome(success: bool, cached: bool) -> str:
    if not success:
        return "error"
    return "cached" if cached else "success"


def record_request(
    endpoint: str,
    success: bool,
    cached: bool,
    latency_seconds: float,
    input_tokens: int = 0,
    output_tokens: int = 0,
    cost: float = 0.0,
) -> None:
    """Count one finished request and what it consumed."""
    ai_requests.labels(endpoint=endpoint, outcome=request_outcome(success, cached)).inc()
    request_latency.labels(endpoint=endpoint).observe(latency_seconds)
    if input_tokens:
        ai_tokens.labels(endpoint=endpoint, direction="input").inc(input_tokens)
    if output_tokens:
        ai_tokens.labels(endpoint=endpoint, direction="output").inc(output_tokens)
    if cost > 0:
        ai_cost.labels(endpoint=endpoint).inc(cost)


def record_cache_lookup(endpoint: str, hit: bool) -> None:
    cache_lookups.labels(endpoint=endpoint, result="hit" if hit else "miss").inc()
