"""
Exceções do Exchange Tap
"""
from typing import Optional


class ExchangeTapError(Exception):
    """Erro base do pipeline de telemetria"""


class ConfigurationError(ExchangeTapError):
    """Configuração inválida do middleware"""


class RecordStateError(ExchangeTapError):
    """Operação não permitida no estado atual do registro de troca"""


class DeliveryError(ExchangeTapError):
    """Falha no envio do payload ao coletor (só propagada em modo debug)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
