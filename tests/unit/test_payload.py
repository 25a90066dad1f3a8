#!/usr/bin/env python3
"""
Testes unitários para o registro de troca.
"""

from decimal import Decimal

import pytest
from exchange_tap import __version__
from exchange_tap.exceptions import RecordStateError
from exchange_tap.extractor import ExchangeExtractor
from exchange_tap.payload import ExchangeRecord, RecordState, elapsed_seconds


def make_extractor(error=None):
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "https",
        "path": "/login",
        "raw_path": b"/login",
        "query_string": b"",
        "headers": [
            (b"host", b"api.example.com"),
            (b"authorization", b"Bearer abc123"),
            (b"content-type", b"application/json"),
        ],
        "client": ("203.0.113.9", 4000),
    }
    start = {
        "type": "http.response.start",
        "status": 201,
        "headers": [(b"content-length", b"33"), (b"secret", b"s3")],
    }
    return ExchangeExtractor(scope, start, b'{"token":"xyz","password":"p4ss"}', error)


class TestElapsedSeconds:
    """Testes para o cálculo do load_time."""

    @pytest.mark.parametrize("gap_ns,expected", [
        (2_000_000, "0.00200"),
        (200_000_000, "0.20000"),
        (500_000_000_000, "500.00000"),
        (0, "0.00000"),
        (999, "0.00000"),
        (1_234_567_890, "1.23457"),
    ])
    def test_five_decimal_seconds(self, gap_ns, expected):
        """Testa a escala fixa de cinco casas decimais."""
        start = 1_000_000_000
        assert str(elapsed_seconds(start, start + gap_ns)) == expected

    def test_never_negative(self):
        """Testa que stop antes de start resulta em zero."""
        assert elapsed_seconds(5_000_000, 1_000_000) == Decimal("0")

    def test_monotonic(self):
        """Testa que o resultado cresce com o intervalo."""
        values = [elapsed_seconds(0, gap) for gap in (0, 10_000, 2_000_000, 7_000_000_000)]
        assert values == sorted(values)


class TestExchangeRecord:
    """Testes para a classe ExchangeRecord."""

    def setup_method(self):
        """Configuração para cada teste."""
        self.record = ExchangeRecord.create("api-key", "project-1")

    def test_create_fills_identity(self):
        """Testa campos estáticos do registro."""
        payload = self.record.to_payload()

        assert payload["api_key"] == "api-key"
        assert payload["project_id"] == "project-1"
        assert payload["sdk"] == "python"
        assert payload["version"] == __version__
        assert payload["data"]["language"]["name"] == "python"
        assert set(payload["data"]["server"]["os"]) == {"name", "release", "architecture"}
        assert self.record.state is RecordState.OPEN

    def test_attach_request_body_only_once(self):
        """Testa que o body do request é anexado uma única vez."""
        self.record.attach_request_body({"a": 1})

        with pytest.raises(RecordStateError):
            self.record.attach_request_body({"a": 2})

        assert self.record.data.request.body == {"a": 1}

    def test_attach_after_finalize_is_rejected(self):
        """Testa anexar body a um registro finalizado."""
        self.record.finalize(make_extractor())

        with pytest.raises(RecordStateError):
            self.record.attach_request_body({"a": 1})

    def test_finalize(self):
        """Testa a coleta dos dados da troca."""
        self.record.attach_raw_request_body(b'{"password":"secret1","name":"Al"}', "application/json")
        self.record.finalize(make_extractor())

        data = self.record.to_payload()["data"]

        assert self.record.state is RecordState.FINALIZED
        assert data["server"]["protocol"] == "HTTPS/x"
        assert data["request"]["url"] == "https://api.example.com/login"
        assert data["request"]["ip"] == "203.0.113.9"
        assert data["request"]["method"] == "POST"
        assert "user_agent" not in data["request"]
        assert data["response"]["code"] == 201
        assert data["response"]["size"] == 33
        assert data["response"]["body"] == {"token": "xyz", "password": "p4ss"}
        assert data["response"]["load_time"] >= 0
        assert data["errors"] == []

    def test_finalize_twice_is_rejected(self):
        """Testa que finalizar duas vezes é erro."""
        self.record.finalize(make_extractor())

        with pytest.raises(RecordStateError):
            self.record.finalize(make_extractor())

    def test_finalize_with_explicit_stop(self):
        """Testa load_time com instante de parada explícito."""
        self.record.finalize(make_extractor(), stop_ns=self.record._start_ns + 2_000_000)

        assert str(self.record.load_time) == "0.00200"
        assert self.record.data.response.load_time == 0.002

    def test_finalize_records_errors(self):
        """Testa erro da aplicação no registro."""
        self.record.finalize(make_extractor(error=KeyError("user")))

        errors = self.record.to_payload()["data"]["errors"]

        assert errors == [{"source": "onError", "message": "KeyError('user')", "type": "KeyError"}]

    def test_mask(self):
        """Testa mascaramento de bodies e headers."""
        self.record.attach_request_body({"password": "secret1", "name": "Al"})
        self.record.finalize(make_extractor())

        self.record.mask(["password", "secret"])
        data = self.record.to_payload()["data"]

        assert data["request"]["body"] == {"password": "******", "name": "Al"}
        assert data["request"]["headers"]["authorization"] == "Bearer ******"
        assert data["response"]["body"] == {"token": "xyz", "password": "******"}
        assert data["response"]["headers"]["secret"] == "******"
        assert data["response"]["headers"]["content-length"] == "33"

    def test_mask_is_idempotent(self):
        """Testa que mascarar duas vezes não muda o resultado."""
        self.record.attach_request_body({"password": "secret1", "nested": {"ccv": 1}})
        self.record.finalize(make_extractor())

        self.record.mask(["password", "ccv"])
        once = self.record.to_payload()
        self.record.mask(["password", "ccv"])

        assert self.record.to_payload() == once
