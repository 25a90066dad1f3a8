"""
Exchange Tap - middleware de telemetria HTTP

Captura cada request/response de uma aplicação ASGI, mascara campos sensíveis
e envia o registro da troca para um coletor remoto sem bloquear a resposta.
"""

__version__ = "1.0.0"
__author__ = "Exchange Tap Team"
__description__ = "HTTP exchange capture and redaction middleware for ASGI applications"

from .config import TapSettings, load_settings
from .redactor import MASK_TOKEN, FieldRedactor, create_redactor, redact, redact_headers
from .extractor import ExchangeExtractor, decode_request_body, decode_response_body
from .payload import ExchangeRecord, elapsed_seconds
from .dispatcher import Dispatcher
from .middleware import ExchangeTapMiddleware
from .exceptions import ExchangeTapError, DeliveryError, RecordStateError, ConfigurationError

__all__ = [
    'TapSettings',
    'load_settings',
    'MASK_TOKEN',
    'FieldRedactor',
    'create_redactor',
    'redact',
    'redact_headers',
    'ExchangeExtractor',
    'decode_request_body',
    'decode_response_body',
    'ExchangeRecord',
    'elapsed_seconds',
    'Dispatcher',
    'ExchangeTapMiddleware',
    'ExchangeTapError',
    'DeliveryError',
    'RecordStateError',
    'ConfigurationError'
]
