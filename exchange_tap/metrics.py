"""
Métricas do pipeline de telemetria
"""
import structlog
from prometheus_client import Counter, Histogram, Info

from . import __version__

logger = structlog.get_logger(__name__)

EXCHANGES_CAPTURED = Counter('exchange_tap_exchanges_captured_total', 'Exchanges captured', ['method'])
EXCHANGES_SKIPPED = Counter('exchange_tap_exchanges_skipped_total', 'Exchanges skipped by ignored route')
CAPTURE_ERRORS = Counter('exchange_tap_capture_errors_total', 'Telemetry pipeline errors', ['stage'])
DELIVERIES = Counter('exchange_tap_deliveries_total', 'Payload deliveries to the collector', ['outcome'])
LOAD_TIME = Histogram('exchange_tap_load_time_seconds', 'Load time of captured exchanges')
STATUS_CODES = Counter('exchange_tap_status_codes_total', 'Status codes of captured exchanges', ['status_code'])

TAP_INFO = Info('exchange_tap', 'Exchange tap middleware information')
TAP_INFO.info({'version': __version__})


def record_exchange(method: str, status_code: int, load_time: float) -> None:
    """Registra métricas de uma troca capturada"""
    try:
        EXCHANGES_CAPTURED.labels(method=method.upper()).inc()
        STATUS_CODES.labels(status_code=str(status_code)).inc()
        LOAD_TIME.observe(load_time)
    except Exception as e:
        logger.warning("Erro ao registrar métricas da troca", error=str(e))


def record_skip() -> None:
    EXCHANGES_SKIPPED.inc()


def record_capture_error(stage: str) -> None:
    CAPTURE_ERRORS.labels(stage=stage).inc()


def record_delivery(outcome: str) -> None:
    DELIVERIES.labels(outcome=outcome).inc()
