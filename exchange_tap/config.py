"""
Configurações do Exchange Tap
Identidade do projeto, modo de entrega, política de mascaramento e rotas ignoradas
"""
import os
from typing import Any, Dict, Iterable, Optional, Tuple

import structlog
import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

DEFAULT_COLLECTOR_URL = "https://rocknrolla.treblle.com"

DEFAULT_MASKING_FIELDS: Tuple[str, ...] = (
    "password",
    "pwd",
    "secret",
    "password_confirmation",
    "passwordConfirmation",
    "cc",
    "card_number",
    "cardNumber",
    "ccv",
    "ssn",
    "credit_score",
    "creditScore",
)


class TapSettings(BaseSettings):
    """Configurações do middleware, imutáveis depois de construídas"""

    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_TAP_",
        case_sensitive=False,
        frozen=True,
    )

    # Identidade
    api_key: str = Field(default="", description="API key do projeto no coletor")
    project_id: str = Field(default="", description="ID do projeto no coletor")

    # Entrega
    debug: bool = Field(default=False, description="Aguardar o envio e falhar alto em caso de erro")
    collector_url: str = Field(default=DEFAULT_COLLECTOR_URL, description="URL do coletor remoto")
    send_timeout: float = Field(default=2.0, description="Timeout do envio em segundos")

    # Política de mascaramento e rotas ignoradas
    masking_fields: Tuple[str, ...] = Field(
        default=DEFAULT_MASKING_FIELDS,
        description="Campos mascarados em bodies e headers"
    )
    ignored_routes: Tuple[str, ...] = Field(
        default=(),
        description="Padrões de rota que não geram registro"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Nível de log")
    log_format: str = Field(default="json", description="Formato do log (json ou console)")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level deve ser um de: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        if v.lower() not in ('json', 'console'):
            raise ValueError('log_format deve ser json ou console')
        return v.lower()

    @field_validator('send_timeout')
    @classmethod
    def validate_send_timeout(cls, v):
        if v <= 0:
            raise ValueError('send_timeout deve ser maior que zero')
        return v

    @property
    def has_identity(self) -> bool:
        return bool(self.api_key and self.project_id)

    def enable_debug(self) -> "TapSettings":
        """Retorna uma cópia com o modo debug ligado"""
        return self.model_copy(update={'debug': True})

    def clear_masking_fields(self) -> "TapSettings":
        """Retorna uma cópia sem nenhum campo mascarado"""
        return self.model_copy(update={'masking_fields': ()})

    def add_masking_fields(self, fields: Iterable[str]) -> "TapSettings":
        """Retorna uma cópia com campos adicionais de mascaramento"""
        return self.model_copy(update={'masking_fields': self.masking_fields + tuple(fields)})

    def add_ignored_routes(self, routes: Iterable[str]) -> "TapSettings":
        """Retorna uma cópia com rotas adicionais ignoradas"""
        return self.model_copy(update={'ignored_routes': self.ignored_routes + tuple(routes)})

    def should_ignore_route(self, route_pattern: str) -> bool:
        """Verifica se o padrão de rota está na lista de rotas ignoradas"""
        return route_pattern in self.ignored_routes


def _read_config_file(config_path: str) -> Dict[str, Any]:
    """Carrega a seção exchange_tap de um arquivo YAML"""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Erro ao carregar arquivo de configuração", path=config_path, error=str(e))
        return {}

    section = config_data.get('exchange_tap', {}) if isinstance(config_data, dict) else {}
    if not isinstance(section, dict):
        logger.warning("Seção exchange_tap inválida, ignorando", path=config_path)
        return {}

    unknown = set(section) - set(TapSettings.model_fields)
    if unknown:
        logger.warning("Chaves desconhecidas no arquivo de configuração", keys=sorted(unknown))

    return {key: value for key, value in section.items() if key in TapSettings.model_fields}


def load_settings(config_path: Optional[str] = None, **overrides: Any) -> TapSettings:
    """
    Monta as configurações na ordem: arquivo YAML, variáveis de ambiente,
    argumentos explícitos (o último vence).
    """
    if config_path is None:
        config_path = os.getenv('EXCHANGE_TAP_CONFIG_PATH')

    file_values: Dict[str, Any] = {}
    if config_path and os.path.exists(config_path):
        file_values = _read_config_file(config_path)

    try:
        from_env = TapSettings().model_fields_set
        merged = {key: value for key, value in file_values.items() if key not in from_env}
        merged.update(overrides)
        return TapSettings(**merged)
    except ValueError as e:
        raise ConfigurationError(f"Configuração inválida: {e}") from e
