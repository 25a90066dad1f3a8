"""
Extração dos dados de uma troca HTTP (request/response) a partir do scope ASGI
"""
import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_CLIENT_IP = "127.0.0.1"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

RawHeaders = Iterable[Tuple[bytes, bytes]]


def headers_to_dict(raw_headers: Optional[RawHeaders]) -> Dict[str, str]:
    """
    Converte headers ASGI em dict de strings. Nomes repetidos ficam com o
    último valor; valores que não são ASCII viram string vazia.
    """
    headers = {}
    for name, value in raw_headers or []:
        try:
            decoded = value.decode("ascii")
        except UnicodeDecodeError:
            decoded = ""
        headers[name.decode("latin-1")] = decoded
    return headers


def _parse_forwarded(value: str) -> Dict[str, str]:
    """Lê o primeiro elemento de um header Forwarded (RFC 7239)"""
    first = value.split(",", 1)[0]
    pairs = {}
    for part in first.split(";"):
        if "=" not in part:
            continue
        key, _, val = part.partition("=")
        pairs[key.strip().lower()] = val.strip().strip('"')
    return pairs


def error_descriptor(error: BaseException) -> Dict[str, str]:
    """Descreve uma exceção da aplicação no formato do coletor"""
    message = repr(error)
    error_type = message.split("(", 1)[0].split(" {", 1)[0].strip()
    return {
        "source": "onError",
        "message": message,
        "type": error_type,
    }


def _reject_constant(name: str) -> Any:
    raise ValueError(f"constante fora do JSON: {name}")


def _parse_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        raise ValueError(f"número fora do intervalo: {text}")
    return value


def _loads(raw: bytes) -> Any:
    """json.loads estrito: NaN, Infinity e números que estouram o float não são aceitos"""
    return json.loads(raw, parse_constant=_reject_constant, parse_float=_parse_float)


def decode_request_body(raw: Optional[bytes], content_type: str) -> Any:
    """
    Decodifica o body do request. Só application/json é interpretado;
    qualquer outro content-type vira None para não corromper formulários e
    multipart.
    """
    if (content_type or "").lower() != "application/json":
        return None
    if not raw:
        return None

    try:
        return _loads(raw)
    except ValueError:
        pass

    try:
        return {"request_as_a_string": raw.decode("utf-8")}
    except UnicodeDecodeError:
        return {"request_as_raw_bytes": repr(raw)}


def decode_response_body(raw: Optional[bytes]) -> Any:
    """Decodifica o body da response sem olhar o content-type"""
    if not raw:
        return None

    try:
        return _loads(raw)
    except ValueError:
        pass

    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return repr(raw)


class ExchangeExtractor:
    """Leitor dos metadados de uma troca já respondida"""

    def __init__(
        self,
        scope: Dict[str, Any],
        response_start: Optional[Dict[str, Any]] = None,
        response_body: Optional[bytes] = None,
        error: Optional[BaseException] = None,
    ):
        self.scope = scope
        self.response_start = response_start or {}
        self.response_body = response_body
        self.error = error

        self._request_headers = headers_to_dict(scope.get("headers"))
        self._response_headers = headers_to_dict(self.response_start.get("headers"))
        self._forwarded = _parse_forwarded(self._request_headers.get("forwarded", ""))

    def scheme(self) -> str:
        return (
            self._forwarded.get("proto")
            or self._request_headers.get("x-forwarded-proto", "").split(",", 1)[0].strip()
            or self.scope.get("scheme", "http")
        )

    def host(self) -> str:
        host = (
            self._forwarded.get("host")
            or self._request_headers.get("x-forwarded-host", "").split(",", 1)[0].strip()
            or self._request_headers.get("host")
        )
        if host:
            return host

        server = self.scope.get("server")
        if server:
            server_host, port = server[0], server[1]
            return f"{server_host}:{port}" if port else server_host
        return "localhost"

    def protocol(self) -> str:
        return f"{self.scheme().upper()}/x"

    def status_code(self) -> int:
        return int(self.response_start.get("status", 500))

    def body_size(self) -> int:
        """Content-Length da response; 0 quando o tamanho é desconhecido"""
        try:
            return int(self._response_headers.get("content-length", 0))
        except ValueError:
            return 0

    def request_headers(self) -> Dict[str, str]:
        return dict(self._request_headers)

    def response_headers(self) -> Dict[str, str]:
        return dict(self._response_headers)

    def errors(self) -> List[Dict[str, str]]:
        if self.error is None:
            return []
        return [error_descriptor(self.error)]

    def timestamp(self) -> str:
        return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)

    def client_ip(self) -> str:
        """IP real do cliente, respeitando os headers de proxy"""
        forwarded_for = self._forwarded.get("for")
        if forwarded_for:
            return forwarded_for

        xff = self._request_headers.get("x-forwarded-for", "")
        parts = [p.strip() for p in xff.split(",") if p.strip()]
        if parts:
            return parts[0]

        real_ip = self._request_headers.get("x-real-ip", "").strip()
        if real_ip:
            return real_ip

        client = self.scope.get("client")
        if client and client[0]:
            return client[0]

        return DEFAULT_CLIENT_IP

    def url(self) -> str:
        path = self.scope.get("raw_path")
        if path:
            path = path.decode("latin-1")
        else:
            path = self.scope.get("root_path", "") + self.scope.get("path", "/")

        query = self.scope.get("query_string", b"").decode("latin-1")
        if query:
            path = f"{path}?{query}"

        return f"{self.scheme()}://{self.host()}{path}"

    def user_agent(self) -> Optional[str]:
        return self._request_headers.get("user-agent")

    def method(self) -> str:
        return self.scope.get("method", "GET")

    def content_type(self) -> str:
        return self._request_headers.get("content-type", "")

    def response_body_value(self) -> Any:
        return decode_response_body(self.response_body)
