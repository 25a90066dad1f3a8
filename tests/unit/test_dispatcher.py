#!/usr/bin/env python3
"""
Testes unitários para o envio ao coletor.
"""

import asyncio
import json

import httpx
import pytest
from exchange_tap.config import TapSettings
from exchange_tap.dispatcher import Dispatcher
from exchange_tap.exceptions import DeliveryError
from exchange_tap.payload import ExchangeRecord


class TestDispatcher:
    """Testes para a classe Dispatcher."""

    def setup_method(self):
        """Configuração para cada teste."""
        self.requests = []
        self.settings = TapSettings(
            api_key="key-123",
            project_id="project-1",
            collector_url="https://collector.test/"
        )
        self.record = ExchangeRecord.create("key-123", "project-1")
        self.record.attach_request_body({"name": "Al"})

    def transport(self, status_code=200, error=None, delay=0.0):
        async def handler(request):
            self.requests.append(request)
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            return httpx.Response(status_code, text="ok")

        return httpx.MockTransport(handler)

    def test_serialize(self):
        """Testa a serialização do registro."""
        payload = json.loads(Dispatcher.serialize(self.record))

        assert payload["api_key"] == "key-123"
        assert payload["data"]["request"]["body"] == {"name": "Al"}

    def test_serialize_is_strict_json(self):
        """Testa que o registro nunca carrega NaN para o coletor."""
        record = ExchangeRecord.create("key-123", "project-1")
        record.attach_raw_request_body(b"NaN", "application/json")

        serialized = Dispatcher.serialize(record)

        assert b":NaN" not in serialized
        assert json.loads(serialized)["data"]["request"]["body"] == {"request_as_a_string": "NaN"}

    @pytest.mark.asyncio
    async def test_fire_and_forget_posts_payload(self):
        """Testa envio desacoplado com o header x-api-key."""
        dispatcher = Dispatcher(self.settings, transport=self.transport())

        await dispatcher.deliver(self.record)
        await dispatcher.wait_idle()

        assert len(self.requests) == 1
        request = self.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://collector.test/"
        assert request.headers["x-api-key"] == "key-123"
        assert json.loads(request.content)["project_id"] == "project-1"
        assert dispatcher.stats["sent"] == 1
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_fire_and_forget_does_not_wait(self):
        """Testa que deliver retorna antes do envio terminar."""
        dispatcher = Dispatcher(self.settings, transport=self.transport(delay=0.2))

        await dispatcher.deliver(self.record)

        assert dispatcher.pending == 1
        await dispatcher.wait_idle()
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_fire_and_forget_swallows_errors(self):
        """Testa que falhas no modo produção não propagam."""
        dispatcher = Dispatcher(
            self.settings,
            transport=self.transport(error=httpx.ConnectError("unreachable"))
        )

        await dispatcher.deliver(self.record)
        await dispatcher.wait_idle()

        assert dispatcher.stats["failed"] == 1
        assert "unreachable" in dispatcher.stats["last_error"]

    @pytest.mark.asyncio
    async def test_fire_and_forget_counts_http_errors(self):
        """Testa resposta de erro do coletor em modo produção."""
        dispatcher = Dispatcher(self.settings, transport=self.transport(status_code=500))

        await dispatcher.deliver(self.record)
        await dispatcher.wait_idle()

        assert dispatcher.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_debug_awaits_send(self):
        """Testa que o modo debug aguarda o envio."""
        dispatcher = Dispatcher(self.settings.enable_debug(), transport=self.transport(delay=0.05))

        await dispatcher.deliver(self.record)

        assert len(self.requests) == 1
        assert dispatcher.pending == 0
        assert dispatcher.stats["sent"] == 1

    @pytest.mark.asyncio
    async def test_debug_raises_on_transport_failure(self):
        """Testa que o modo debug falha alto em erro de conexão."""
        dispatcher = Dispatcher(
            self.settings.enable_debug(),
            transport=self.transport(error=httpx.ConnectError("unreachable"))
        )

        with pytest.raises(DeliveryError):
            await dispatcher.deliver(self.record)

    @pytest.mark.asyncio
    async def test_debug_raises_on_http_error(self):
        """Testa que o modo debug falha com status não-2xx."""
        dispatcher = Dispatcher(self.settings.enable_debug(), transport=self.transport(status_code=401))

        with pytest.raises(DeliveryError) as exc_info:
            await dispatcher.deliver(self.record)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_client_is_reused_and_closed(self):
        """Testa que um único cliente HTTP atende todos os envios."""
        dispatcher = Dispatcher(self.settings, transport=self.transport(delay=0.05))

        client = dispatcher.client
        await dispatcher.deliver(self.record)
        await dispatcher.deliver(self.record)

        assert dispatcher.client is client

        await dispatcher.close()

        assert len(self.requests) == 2
        assert dispatcher.pending == 0
        assert client.is_closed
