"""
Leitura não destrutiva dos bodies de uma troca ASGI

O body do request é lido até o fim e reapresentado ao handler por um novo
receive; o body da response é copiado enquanto as mensagens seguem para o
cliente sem alteração.
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional

Message = Dict[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]


class BufferedRequest:
    """Body do request já consumido e o receive que o reapresenta"""

    def __init__(self, body: bytes, receive: Receive, disconnected: bool = False,
                 error: Optional[Exception] = None):
        self.body = body
        self.receive = receive
        self.disconnected = disconnected
        self.error = error


def replay_receive(body: bytes, receive: Receive,
                   pending: Optional[Message] = None) -> Receive:
    """
    Cria um receive que entrega o body bufferizado em uma única mensagem e
    depois delega ao receive original (para o http.disconnect continuar
    chegando ao handler).
    """
    first: List[Message] = [pending or {"type": "http.request", "body": body, "more_body": False}]

    async def receive_replayed() -> Message:
        if first:
            return first.pop()
        return await receive()

    return receive_replayed


def faulted_receive(body: bytes, error: Exception) -> Receive:
    """
    Receive que entrega o que foi lido antes da falha e depois levanta o mesmo
    erro, como o handler veria sem a captura.
    """
    partial: List[Message] = [{"type": "http.request", "body": body, "more_body": True}] if body else []

    async def receive_faulted() -> Message:
        if partial:
            return partial.pop()
        raise error

    return receive_faulted


async def buffer_request_body(receive: Receive) -> BufferedRequest:
    """Consome todas as mensagens http.request e monta o replay"""
    chunks: List[bytes] = []

    while True:
        try:
            message = await receive()
        except Exception as e:
            body = b"".join(chunks)
            return BufferedRequest(body, faulted_receive(body, e), error=e)

        if message["type"] == "http.disconnect":
            # Conexão caiu no meio da captura: o handler recebe o disconnect
            body = b"".join(chunks)
            return BufferedRequest(body, replay_receive(body, receive, pending=message), disconnected=True)

        chunks.append(message.get("body", b""))
        if not message.get("more_body", False):
            break

    body = b"".join(chunks)
    return BufferedRequest(body, replay_receive(body, receive))


class ResponseTap:
    """Envolve o send do ASGI copiando status, headers e body da response"""

    def __init__(self, send: Send):
        self._send = send
        self.start_message: Optional[Message] = None
        self.sized = False
        self.completed = False
        self._chunks: List[bytes] = []

    @property
    def started(self) -> bool:
        return self.start_message is not None

    @property
    def body(self) -> Optional[bytes]:
        """Bytes da response; None quando a response não tem tamanho conhecido"""
        if not self.sized:
            return None
        return b"".join(self._chunks)

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.start_message = message
            self.sized = any(
                name.lower() == b"content-length" for name, _ in message.get("headers", [])
            )
        elif message["type"] == "http.response.body" and self.sized:
            self._chunks.append(message.get("body", b""))

        await self._send(message)

        if message["type"] == "http.response.body" and not message.get("more_body", False):
            self.completed = True
