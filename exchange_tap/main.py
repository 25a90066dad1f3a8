"""
Aplicação de exemplo com o Exchange Tap
Sobe uma API FastAPI instrumentada pelo middleware, com health check e métricas
"""
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__
from .config import TapSettings, load_settings
from .dispatcher import Dispatcher
from .logging_config import configure_logging
from .middleware import ExchangeTapMiddleware

logger = structlog.get_logger(__name__)

HOST_IGNORED_ROUTES = ("/health", "/metrics")


def create_app(settings: Optional[TapSettings] = None, dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    """Cria a aplicação instrumentada; /health e /metrics não geram registros"""
    settings = (settings or load_settings()).add_ignored_routes(HOST_IGNORED_ROUTES)
    dispatcher = dispatcher or Dispatcher(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await dispatcher.close()

    app = FastAPI(
        lifespan=lifespan,
        title="Exchange Tap - Demo",
        description="API de exemplo instrumentada pelo Exchange Tap",
        version=__version__
    )
    app.add_middleware(ExchangeTapMiddleware, settings=settings, dispatcher=dispatcher)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "version": __version__}

    @app.get("/metrics")
    async def metrics():
        """Endpoint de métricas Prometheus"""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/stats")
    async def get_stats():
        """Estatísticas de envio ao coletor"""
        return {"dispatcher": dispatcher.get_stats()}

    @app.post("/echo")
    async def echo(request: Request) -> Dict[str, Any]:
        """Devolve o JSON recebido, útil para verificar o replay do body"""
        return {"received": await request.json()}

    return app


def main(host: str = "0.0.0.0", port: int = 8000):
    """Função principal"""
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_format)

    try:
        app = create_app(settings)
        logger.info("Iniciando servidor HTTP", host=host, port=port, debug=settings.debug)
        uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower(), access_log=True)
    except KeyboardInterrupt:
        logger.info("Interrompido pelo usuário")
    except Exception as e:
        logger.error("Erro crítico na aplicação", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
