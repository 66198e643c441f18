from prometheus_client import Counter, Histogram, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # If it already exists, retrieve it from the registry
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "taskflow_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "method", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "taskflow_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

LLM_REQUESTS_TOTAL = get_or_create_metric(
    "taskflow_llm_requests_total",
    "Completion calls to the LLM provider",
    Counter,
    labelnames=["operation", "outcome"],
)

SUGGESTIONS_GENERATED_TOTAL = get_or_create_metric(
    "taskflow_suggestions_generated_total",
    "Task suggestions returned by the model",
    Counter,
)

SUGGESTIONS_STORED_TOTAL = get_or_create_metric(
    "taskflow_suggestions_stored_total",
    "Task suggestions newly stored after reconciliation",
    Counter,
)
