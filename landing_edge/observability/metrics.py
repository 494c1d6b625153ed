from prometheus_client import Counter, Histogram

edge_requests_total = Counter(
    "edge_requests_total",
    "Intercepted page requests by outcome",
    ["outcome"],
)
edge_assignments_total = Counter(
    "edge_assignments_total",
    "Experiment variant assignments",
    ["experiment", "variant", "source"],
)
edge_attribution_visits_total = Counter(
    "edge_attribution_visits_total",
    "Attribution visit registrations by result",
    ["result"],
)
edge_attribution_latency_seconds = Histogram(
    "edge_attribution_latency_seconds",
    "Attribution service call latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
)
