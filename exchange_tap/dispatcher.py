"""
Envio dos registros de troca para o coletor remoto
"""
import asyncio
import json
from typing import Any, Dict, Optional, Set

import httpx
import structlog

from .config import TapSettings
from .exceptions import DeliveryError
from .metrics import record_delivery
from .payload import ExchangeRecord

logger = structlog.get_logger(__name__)


class Dispatcher:
    """
    Envia o payload via POST com timeout curto e sem retries.

    Em produção o envio roda numa task desacoplada e o resultado nunca chega
    ao request original. Em modo debug o envio é aguardado e uma falha vira
    DeliveryError.
    """

    def __init__(self, settings: TapSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._tasks: Set[asyncio.Task] = set()

        self.stats = {
            'sent': 0,
            'failed': 0,
            'last_error': None
        }

    @staticmethod
    def serialize(record: ExchangeRecord) -> bytes:
        return json.dumps(record.to_payload(), separators=(',', ':'), allow_nan=False).encode('utf-8')

    async def deliver(self, record: ExchangeRecord) -> None:
        """Serializa o registro e dispara o envio conforme o modo configurado"""
        payload = self.serialize(record)

        if self.settings.debug:
            logger.debug("Payload da troca", payload=record.to_payload())
            await self._send_debug(payload)
            return

        task = asyncio.create_task(self._send_detached(payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def client(self) -> httpx.AsyncClient:
        """Cliente HTTP compartilhado entre os envios, criado no primeiro uso"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.send_timeout),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                transport=self.transport,
            )
        return self._client

    async def close(self):
        """Aguarda os envios pendentes e fecha o cliente HTTP"""
        await self.wait_idle()
        if self._client is not None:
            await self._client.aclose()

    async def _post(self, payload: bytes) -> httpx.Response:
        return await self.client.post(
            self.settings.collector_url,
            content=payload,
            headers={
                'x-api-key': self.settings.api_key,
                'Content-Type': 'application/json'
            }
        )

    async def _send_detached(self, payload: bytes) -> None:
        try:
            response = await self._post(payload)
            response.raise_for_status()
            self.stats['sent'] += 1
            record_delivery('sent')

        except Exception as e:
            self.stats['failed'] += 1
            self.stats['last_error'] = str(e)
            record_delivery('failed')
            logger.debug("Falha no envio ao coletor", error=str(e))

    async def _send_debug(self, payload: bytes) -> None:
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            self.stats['failed'] += 1
            self.stats['last_error'] = str(e)
            record_delivery('failed')
            logger.error("Erro de conexão com o coletor", error=str(e), url=self.settings.collector_url)
            raise DeliveryError(f"Erro de conexão com o coletor: {e}") from e

        logger.debug("Resposta do coletor", status=response.status_code, body=response.text)

        if not response.is_success:
            self.stats['failed'] += 1
            self.stats['last_error'] = f"Erro HTTP {response.status_code}"
            record_delivery('failed')
            raise DeliveryError(
                f"Coletor respondeu {response.status_code}: {response.text}",
                status_code=response.status_code
            )

        self.stats['sent'] += 1
        record_delivery('sent')

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Aguarda os envios desacoplados ainda em andamento"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        stats['pending'] = self.pending
        return stats
