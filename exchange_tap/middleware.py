"""
Middleware ASGI que captura cada troca HTTP e envia o registro ao coletor
"""
from typing import Any, Dict, Iterable, Optional

import structlog
from starlette.routing import Match, Mount
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import TapSettings, load_settings
from .dispatcher import Dispatcher
from .extractor import ExchangeExtractor, headers_to_dict
from .metrics import record_capture_error, record_exchange, record_skip
from .payload import ExchangeRecord
from .streams import ResponseTap, buffer_request_body

logger = structlog.get_logger(__name__)


def _match_routes(routes: Iterable[Any], scope: Dict[str, Any], prefix: str) -> Optional[str]:
    for route in routes:
        match, child_scope = route.matches(scope)
        if match is not Match.FULL:
            continue

        path = prefix + getattr(route, "path", "")
        if isinstance(route, Mount):
            return _match_routes(route.routes, {**scope, **child_scope}, path) or path
        return path

    return None


def resolve_route_pattern(scope: Scope) -> str:
    """
    Padrão da rota que vai atender o request (ex.: /users/{user_id}),
    ou string vazia quando nenhuma rota casa.
    """
    routes = getattr(scope.get("app"), "routes", None) or []
    try:
        return _match_routes(routes, scope, "") or ""
    except Exception as e:
        logger.debug("Erro ao resolver padrão da rota", error=str(e))
        return ""


class ExchangeTapMiddleware:
    """
    Captura request e response de cada troca HTTP sem alterar o que o
    handler e o cliente recebem.

    Uso:
        app.add_middleware(ExchangeTapMiddleware, settings=settings)
    """

    def __init__(
        self,
        app: ASGIApp,
        settings: Optional[TapSettings] = None,
        dispatcher: Optional[Dispatcher] = None,
        **overrides: Any,
    ):
        self.app = app

        if settings is None:
            settings = load_settings(**overrides)
        elif overrides:
            settings = TapSettings(**{**settings.model_dump(), **overrides})
        self.settings = settings

        self.dispatcher = dispatcher or Dispatcher(settings)

        if not settings.has_identity:
            logger.warning("api_key ou project_id não configurados, o coletor vai rejeitar os registros")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        route_pattern = resolve_route_pattern(scope)
        if self.settings.should_ignore_route(route_pattern):
            record_skip()
            await self.app(scope, receive, send)
            return

        record = ExchangeRecord.create(self.settings.api_key, self.settings.project_id)

        content_type = headers_to_dict(scope.get("headers")).get("content-type", "")
        raw_body = None

        if content_type.lower() == "application/json":
            buffered = await buffer_request_body(receive)
            receive = buffered.receive

            if buffered.disconnected:
                logger.info("Cliente desconectou durante a captura, troca sem registro", path=scope.get("path"))
                await self.app(scope, receive, send)
                return

            if buffered.error is not None:
                record_capture_error("request_body")
                logger.warning("Falha ao ler body do request, registro segue sem body", error=str(buffered.error))
            else:
                raw_body = buffered.body

        try:
            record.attach_raw_request_body(raw_body, content_type)
        except Exception as e:
            record_capture_error("request_body")
            logger.warning("Erro ao capturar body do request", error=str(e))

        tap = ResponseTap(send)
        try:
            await self.app(scope, receive, tap)
        except Exception as exc:
            try:
                await self._report(record, scope, tap, exc)
            except Exception as e:
                record_capture_error("dispatch")
                logger.error("Erro ao entregar registro de troca com falha", error=str(e))
            raise

        await self._report(record, scope, tap)

    async def _report(
        self,
        record: ExchangeRecord,
        scope: Scope,
        tap: ResponseTap,
        error: Optional[BaseException] = None,
    ) -> None:
        """Finaliza, mascara e entrega o registro da troca"""
        try:
            extractor = ExchangeExtractor(scope, tap.start_message, tap.body, error)
            record.finalize(extractor)
            record.mask(self.settings.masking_fields)
        except Exception as e:
            record_capture_error("assemble")
            logger.warning("Erro ao montar registro da troca", error=str(e))
            return

        response = record.data.response
        record_exchange(record.data.request.method or "", response.code or 0, response.load_time or 0.0)
        logger.debug(
            "Troca capturada",
            method=record.data.request.method,
            url=record.data.request.url,
            status=response.code,
            load_time=response.load_time,
        )

        if self.settings.debug:
            await self.dispatcher.deliver(record)
            return

        try:
            await self.dispatcher.deliver(record)
        except Exception as e:
            record_capture_error("dispatch")
            logger.warning("Erro ao despachar registro da troca", error=str(e))
