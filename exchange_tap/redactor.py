"""
Módulo de mascaramento de campos sensíveis
Substitui valores de campos configurados em bodies estruturados e em headers
"""
from typing import Any, Dict, Iterable, Mapping

MASK_TOKEN = "******"


def redact(value: Any, sensitive_fields: Iterable[str]) -> Any:
    """
    Retorna uma cópia do valor com os campos sensíveis mascarados.

    Só objetos (dicts) são percorridos recursivamente; listas ficam intactas.
    Para uma chave sensível, strings viram MASK_TOKEN e qualquer outro valor
    (número, bool, None, lista, objeto) vira None. Raízes que não são dict
    são devolvidas sem alteração.
    """
    fields = frozenset(sensitive_fields)
    if not isinstance(value, dict):
        return value
    return _redact_dict(value, fields)


def _redact_dict(data: Dict[str, Any], fields: frozenset) -> Dict[str, Any]:
    redacted = {}

    for key, item in data.items():
        if key in fields:
            redacted[key] = MASK_TOKEN if isinstance(item, str) else None
        elif isinstance(item, dict):
            redacted[key] = _redact_dict(item, fields)
        else:
            redacted[key] = item

    return redacted


def redact_headers(headers: Mapping[str, str], sensitive_fields: Iterable[str]) -> Dict[str, str]:
    """
    Mascara um mapa plano de headers.

    Authorization (qualquer caixa) mantém o esquema e mascara a credencial:
    "Bearer abc" -> "Bearer ******". Demais headers são comparados com os
    campos sensíveis respeitando maiúsculas/minúsculas.
    """
    fields = frozenset(sensitive_fields)
    redacted = {}

    for key, value in (headers or {}).items():
        if key.lower() == "authorization":
            scheme = value.split(" ", 1)[0] if value else ""
            redacted[key] = f"{scheme} {MASK_TOKEN}"
        elif key in fields:
            redacted[key] = MASK_TOKEN
        else:
            redacted[key] = value

    return redacted


class FieldRedactor:
    """Mascarador ligado a um conjunto fixo de campos sensíveis"""

    def __init__(self, sensitive_fields: Iterable[str]):
        self.sensitive_fields = frozenset(sensitive_fields)

    def redact_body(self, body: Any) -> Any:
        return redact(body, self.sensitive_fields)

    def redact_headers(self, headers: Mapping[str, str]) -> Dict[str, str]:
        return redact_headers(headers, self.sensitive_fields)

    def is_sensitive(self, field_name: str) -> bool:
        return field_name in self.sensitive_fields


def create_redactor(sensitive_fields: Iterable[str]) -> FieldRedactor:
    """Factory function para criar o mascarador"""
    return FieldRedactor(sensitive_fields)
