"""
Registro de troca (Exchange Record)
Agrega os dados extraídos de um request/response no formato aceito pelo coletor
"""
import enum
import platform
import time
from decimal import Decimal
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from . import __version__
from .exceptions import RecordStateError
from .extractor import ExchangeExtractor, decode_request_body
from .redactor import create_redactor

SDK_NAME = "python"

# Contrato numérico do load_time: duração inteira em microssegundos dividida
# por um divisor fixo e quantizada em cinco casas decimais
MICROS_PER_SECOND = 1_000_000
LOAD_TIME_QUANTUM = Decimal("0.00001")


def elapsed_seconds(start_ns: int, stop_ns: int) -> Decimal:
    """Segundos entre dois instantes monotônicos (ns), nunca negativo"""
    micros = max(0, stop_ns - start_ns) // 1000
    return (Decimal(micros) / MICROS_PER_SECOND).quantize(LOAD_TIME_QUANTUM)


class ServerOsData(BaseModel):
    name: str
    release: str
    architecture: str


class ServerData(BaseModel):
    timezone: str
    os: ServerOsData
    software: Optional[str] = None
    signature: Optional[str] = None
    protocol: Optional[str] = None


class LanguageData(BaseModel):
    name: str = "python"
    version: str = Field(default_factory=platform.python_version)


class RequestData(BaseModel):
    timestamp: Optional[str] = None
    ip: Optional[str] = None
    url: Optional[str] = None
    user_agent: Optional[str] = None
    method: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ResponseData(BaseModel):
    headers: Dict[str, str] = Field(default_factory=dict)
    code: Optional[int] = None
    size: Optional[int] = None
    load_time: Optional[float] = None
    body: Any = None


class ErrorData(BaseModel):
    source: str
    message: str
    type: str


class ExchangeData(BaseModel):
    server: ServerData
    language: LanguageData = Field(default_factory=LanguageData)
    request: RequestData = Field(default_factory=RequestData)
    response: ResponseData = Field(default_factory=ResponseData)
    errors: List[ErrorData] = Field(default_factory=list)


@lru_cache(maxsize=1)
def server_os() -> ServerOsData:
    return ServerOsData(
        name=platform.system(),
        release=platform.release(),
        architecture=platform.machine(),
    )


def server_data() -> ServerData:
    return ServerData(timezone=time.strftime("%Z"), os=server_os())


class RecordState(enum.Enum):
    OPEN = "open"
    FINALIZED = "finalized"


class ExchangeRecord:
    """
    Registro de uma única troca HTTP.

    Criado no início do request (estado OPEN, relógio iniciado), recebe o
    body do request, é finalizado com os dados da response (FINALIZED),
    mascarado e entregue ao Dispatcher. Não é reutilizável.
    """

    def __init__(self, api_key: str, project_id: str):
        self.api_key = api_key
        self.project_id = project_id
        self.sdk = SDK_NAME
        self.version = __version__
        self.data = ExchangeData(server=server_data())
        self.state = RecordState.OPEN
        self.load_time: Optional[Decimal] = None

        self._start_ns = time.perf_counter_ns()
        self._request_body_attached = False

    @classmethod
    def create(cls, api_key: str, project_id: str) -> "ExchangeRecord":
        return cls(api_key, project_id)

    def attach_request_body(self, value: Any) -> None:
        """Guarda o body do request antes do handler executar"""
        if self.state is not RecordState.OPEN:
            raise RecordStateError("Body do request só pode ser anexado a um registro aberto")
        if self._request_body_attached:
            raise RecordStateError("Body do request já foi anexado")

        self.data.request.body = value
        self._request_body_attached = True

    def attach_raw_request_body(self, raw: Optional[bytes], content_type: str) -> None:
        self.attach_request_body(decode_request_body(raw, content_type))

    def finalize(self, extractor: ExchangeExtractor, stop_ns: Optional[int] = None) -> "ExchangeRecord":
        """Coleta os dados da troca e para o relógio"""
        if self.state is not RecordState.OPEN:
            raise RecordStateError("Registro já finalizado")

        data = self.data
        data.server.protocol = extractor.protocol()

        data.request.timestamp = extractor.timestamp()
        data.request.ip = extractor.client_ip()
        data.request.url = extractor.url()
        data.request.user_agent = extractor.user_agent()
        data.request.method = extractor.method()
        data.request.headers = extractor.request_headers()

        data.response.headers = extractor.response_headers()
        data.response.code = extractor.status_code()
        data.response.size = extractor.body_size()
        data.response.body = extractor.response_body_value()
        data.errors = [ErrorData(**error) for error in extractor.errors()]

        if stop_ns is None:
            stop_ns = time.perf_counter_ns()
        self.load_time = elapsed_seconds(self._start_ns, stop_ns)
        data.response.load_time = float(self.load_time)

        self.state = RecordState.FINALIZED
        return self

    def mask(self, fields: Iterable[str]) -> None:
        """Mascara bodies e headers do request e da response"""
        redactor = create_redactor(fields)
        data = self.data
        data.request.body = redactor.redact_body(data.request.body)
        data.response.body = redactor.redact_body(data.response.body)
        data.request.headers = redactor.redact_headers(data.request.headers)
        data.response.headers = redactor.redact_headers(data.response.headers)

    def to_payload(self) -> Dict[str, Any]:
        """Documento JSON enviado ao coletor"""
        data = self.data.model_dump()
        if data["request"]["user_agent"] is None:
            del data["request"]["user_agent"]

        return {
            "api_key": self.api_key,
            "project_id": self.project_id,
            "version": self.version,
            "sdk": self.sdk,
            "data": data,
        }
