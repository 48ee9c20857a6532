"""
Prometheus metrics for the barprinter worker.
"""
import structlog
from prometheus_client import Counter, Gauge, start_http_server

logger = structlog.get_logger()

# Prometheus metrics - initialized once
try:
    PRINT_JOBS = Counter('barprinter_print_jobs_total', 'Print jobs by outcome', ['outcome'])
    ORDERS_FINALIZED = Counter('barprinter_orders_finalized_total', 'Order finalize attempts by result', ['result'])
    RECONCILIATION_PASSES = Counter('barprinter_reconciliation_passes_total', 'Pending order reconciliation passes')
    HOTPLUG_EVENTS = Counter('barprinter_hotplug_events_total', 'USB hotplug events', ['kind'])
    PRINTER_AVAILABLE = Gauge('barprinter_printer_available', '1 while a printer handle is cached')
except ValueError:
    # Metrics already registered (module re-imported)
    from prometheus_client import REGISTRY
    PRINT_JOBS = REGISTRY._names_to_collectors['barprinter_print_jobs_total']
    ORDERS_FINALIZED = REGISTRY._names_to_collectors['barprinter_orders_finalized_total']
    RECONCILIATION_PASSES = REGISTRY._names_to_collectors['barprinter_reconciliation_passes_total']
    HOTPLUG_EVENTS = REGISTRY._names_to_collectors['barprinter_hotplug_events_total']
    PRINTER_AVAILABLE = REGISTRY._names_to_collectors['barprinter_printer_available']


def start_metrics_server(port: int) -> None:
    """Expose metrics over HTTP on the given port."""
    start_http_server(port)
    logger.info("Metrics exporter started", port=port)
