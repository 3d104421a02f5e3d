from prometheus_client import Counter, Histogram, Gauge

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
)
IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests in progress",
)

CODE_REDEMPTIONS = Counter(
    "loyalty_code_redemptions_total",
    "Delivery code redemption outcomes",
    ["outcome"],
)
QR_CHECKINS = Counter(
    "loyalty_qr_checkins_total",
    "In-store QR check-in outcomes",
    ["outcome"],
)
RATE_LIMIT_DECISIONS = Counter(
    "loyalty_rate_limit_decisions_total",
    "Rate limiter decisions by scope",
    ["scope", "decision"],
)
REWARD_REDEMPTIONS = Counter(
    "loyalty_reward_redemptions_total",
    "Reward redemptions by category",
    ["category"],
)


def get_route_name(scope: dict) -> str:
    route = scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return scope.get("path", "unknown")
