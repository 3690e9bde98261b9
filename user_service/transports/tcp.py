"""
TCP transport for the message-pattern interface.

Frames are ``<length>#<json>`` where ``length`` is the UTF-16 length of
the JSON text, the framing used by NestJS TCP microservices. A request packet
is ``{"pattern": {"cmd": ...}, "data": ..., "id": ...}``; the reply carries the
same ``id`` with either ``response`` or ``err``. Packets without an ``id`` are
events and get no reply.
"""

import asyncio
import codecs
import json
import logging
from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Dict, Iterator, List, Optional, Set, Tuple

from user_service.core.cache import UserCache
from user_service.core.config import Settings
from user_service.core.database import session_scope
from user_service.core.exceptions import UserServiceError
from user_service.dependencies import build_user_service
from user_service.services.user import UserService
from user_service.transports.messages import dispatch

logger = logging.getLogger(__name__)

DELIMITER = "#"
READ_CHUNK_SIZE = 65536
INTERNAL_ERROR_MESSAGE = "Internal server error"

ServiceFactory = Callable[[], ContextManager[UserService]]


class FrameError(Exception):
    """The peer sent bytes that are not a valid frame."""


def js_length(text: str) -> int:
    """Length of ``text`` as JavaScript counts it, in UTF-16 code units."""
    return len(text.encode("utf-16-le")) // 2


def _split_code_units(text: str, length: int) -> Tuple[str, str]:
    """Split ``text`` after ``length`` UTF-16 code units."""
    units = text.encode("utf-16-le")
    try:
        return units[:length * 2].decode("utf-16-le"), units[length * 2:].decode("utf-16-le")
    except UnicodeDecodeError as e:
        raise FrameError(f"Packet length splits a character: {e}")


class JsonSocketDecoder:
    """
    Incremental decoder turning received bytes into JSON messages.

    The length prefix counts UTF-16 code units, as JavaScript peers measure
    strings; characters outside the BMP count twice.
    """

    def __init__(self):
        self._text = codecs.getincrementaldecoder("utf-8")()
        self.buffer = ""
        self.content_length: Optional[int] = None

    def feed(self, chunk: bytes) -> List[Any]:
        """
        Consume received bytes.

        Returns:
            List[Any]: Every message completed by this chunk, in order

        Raises:
            FrameError: On a corrupted length prefix or invalid JSON body
        """
        self.buffer += self._text.decode(chunk)
        messages = []
        while True:
            if self.content_length is None:
                index = self.buffer.find(DELIMITER)
                if index == -1:
                    if self.buffer and not self.buffer.isdigit():
                        raise FrameError(f"Corrupted length value '{self.buffer}' supplied in a packet")
                    break
                raw_length = self.buffer[:index]
                if not raw_length.isdigit():
                    raise FrameError(f"Corrupted length value '{raw_length}' supplied in a packet")
                self.content_length = int(raw_length)
                self.buffer = self.buffer[index + 1:]

            if js_length(self.buffer) < self.content_length:
                break

            body, self.buffer = _split_code_units(self.buffer, self.content_length)
            self.content_length = None
            try:
                messages.append(json.loads(body))
            except json.JSONDecodeError as e:
                raise FrameError(f"Could not decode packet: {e}")
        return messages


def encode_frame(message: Any) -> bytes:
    """Serialize ``message`` into a length-prefixed frame."""
    text = json.dumps(message, ensure_ascii=True, separators=(",", ":"))
    return f"{js_length(text)}{DELIMITER}{text}".encode("ascii")


def pattern_command(pattern: Any) -> Optional[str]:
    """
    Extract the ``cmd`` from a packet pattern.

    The pattern arrives either as an object or as its JSON string.
    """
    if isinstance(pattern, str):
        try:
            pattern = json.loads(pattern)
        except json.JSONDecodeError:
            return pattern
    if isinstance(pattern, dict):
        cmd = pattern.get("cmd")
        return cmd if isinstance(cmd, str) else None
    return None


def error_payload(exc: Exception) -> Dict[str, Any]:
    """Describe ``exc`` with the same taxonomy as the HTTP error envelope."""
    if isinstance(exc, UserServiceError):
        return {"statusCode": exc.status_code, "error": exc.error, "message": exc.detail}
    return {"statusCode": 500, "error": "Internal Server Error", "message": INTERNAL_ERROR_MESSAGE}


def database_service_factory(cache: Optional[UserCache] = None,
                             config: Optional[Settings] = None) -> ServiceFactory:
    """Service factory opening one database session per message."""
    @contextmanager
    def scope() -> Iterator[UserService]:
        with session_scope(config) as db:
            yield build_user_service(db, cache)
    return scope


class MessagePatternServer:
    """
    Asyncio TCP server answering message-pattern requests.

    Service calls run in worker threads; every request gets a fresh service
    from ``service_factory``.
    """

    def __init__(self, service_factory: ServiceFactory, host: str = "0.0.0.0", port: int = 4001):
        self.service_factory = service_factory
        self.host = host
        self.port = port
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when started on port 0."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> "MessagePatternServer":
        self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        logger.info(f"Message-pattern TCP server listening on {self.host}:{self.bound_port}")
        return self

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Message-pattern TCP server stopped")

    def _execute(self, cmd: Optional[str], data: Any) -> Any:
        with self.service_factory() as service:
            return dispatch(service, cmd, data)

    async def handle_packet(self, packet: Any) -> Optional[Dict[str, Any]]:
        """
        Process one decoded packet.

        Returns:
            Optional[Dict[str, Any]]: Reply packet, None for events
        """
        if not isinstance(packet, dict):
            logger.warning(f"Ignoring malformed packet: {packet!r}")
            return None

        cmd = pattern_command(packet.get("pattern"))
        packet_id = packet.get("id")
        if packet_id is None:
            logger.info(f"Ignoring event {cmd!r}, no event handlers are registered")
            return None

        try:
            response = await asyncio.to_thread(self._execute, cmd, packet.get("data"))
        except UserServiceError as e:
            logger.warning(f"Message {cmd!r} failed with {e.status_code}: {e.message}")
            return {"id": packet_id, "err": error_payload(e), "isDisposed": True}
        except Exception as e:
            logger.error(f"Message {cmd!r} failed", exc_info=e)
            return {"id": packet_id, "err": error_payload(e), "isDisposed": True}
        return {"id": packet_id, "response": response, "isDisposed": True}

    async def _reply(self, packet: Any, writer: asyncio.StreamWriter, lock: asyncio.Lock) -> None:
        reply = await self.handle_packet(packet)
        if reply is None:
            return
        async with lock:
            writer.write(encode_frame(reply))
            await writer.drain()

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        logger.debug(f"Connection from {peer}")
        decoder = JsonSocketDecoder()
        write_lock = asyncio.Lock()
        pending: Set[asyncio.Task] = set()
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for packet in decoder.feed(chunk):
                    task = asyncio.create_task(self._reply(packet, writer, write_lock))
                    pending.add(task)
                    task.add_done_callback(pending.discard)
        except FrameError as e:
            logger.error(f"Closing connection from {peer}: {e}")
        except ConnectionError as e:
            logger.info(f"Connection from {peer} lost: {e}")
        finally:
            if pending:
                results = await asyncio.gather(*pending, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.info(f"Reply to {peer} not delivered: {result}")
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError as e:
                logger.debug(f"Connection from {peer} closed with error: {e}")
