"""
rcon.py — Remote console client
-------------------------------
Authenticated command channel to a running server over the RCON protocol.

Frame layout (little-endian):
    int32 length   bytes following this field
    int32 id       request id, echoed by the server (-1 on auth failure)
    int32 type     3 = authenticate, 2 = command / auth response, 0 = response
    bytes payload  UTF-8, no NUL
    2 x NUL

Responses are correlated to requests through a pending table keyed by id,
so concurrent send() calls each get their own response regardless of the
order in which the server answers.
"""

from __future__ import annotations
import asyncio
import struct
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import AuthError, ConnectionClosed, ProtocolError, ResponseTimeout
from .logging_setup import get_logger

log = get_logger("mc.launcher.rcon")

SERVERDATA_AUTH = 3
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_AUTH_RESPONSE = 2
SERVERDATA_RESPONSE_VALUE = 0

AUTH_FAILED_ID = -1

_HEADER = struct.Struct("<iii")
_LENGTH = struct.Struct("<i")
_ID_TYPE = struct.Struct("<ii")
MIN_PACKET_LENGTH = 10  # id + type + two NUL
MAX_PACKET_LENGTH = 1 << 20
MAX_REQUEST_ID = 2 ** 31 - 1

READ_CHUNK = 4096


@dataclass(frozen=True)
class Packet:
    request_id: int
    type: int
    body: str


def encode_packet(request_id: int, packet_type: int, body: str) -> bytes:
    payload = body.encode("utf-8")
    if b"\x00" in payload:
        raise ProtocolError("RCON payload must not contain NUL bytes")
    data = _ID_TYPE.pack(request_id, packet_type) + payload + b"\x00\x00"
    return _LENGTH.pack(len(data)) + data


def decode_packet(buf: bytes) -> tuple[Optional[Packet], int]:
    """
    Decode one packet from the start of buf.
    Returns (packet, consumed); (None, 0) while the packet is incomplete.
    """
    if len(buf) < _LENGTH.size:
        return None, 0
    (length,) = _LENGTH.unpack_from(buf, 0)
    if length < MIN_PACKET_LENGTH or length > MAX_PACKET_LENGTH:
        raise ProtocolError(f"Invalid RCON packet length: {length}")
    total = _LENGTH.size + length
    if len(buf) < total:
        return None, 0
    _, request_id, packet_type = _HEADER.unpack_from(buf, 0)
    payload = bytes(buf[12:total]).rstrip(b"\x00")
    return Packet(request_id, packet_type, payload.decode("utf-8", errors="replace")), total


class PacketBuffer:
    """Accumulates received bytes and yields every complete packet."""

    def __init__(self):
        self._buf = bytearray()

    def feed(self, data: bytes) -> List[Packet]:
        self._buf.extend(data)
        packets: List[Packet] = []
        while True:
            packet, consumed = decode_packet(self._buf)
            if packet is None:
                break
            del self._buf[:consumed]
            packets.append(packet)
        return packets

    def __len__(self) -> int:
        return len(self._buf)


class RconClient:
    def __init__(self, *, timeout: float = 5.0):
        self.timeout = timeout
        self.host: Optional[str] = None
        self.port: Optional[int] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._buffer = PacketBuffer()
        self._pending: Dict[int, asyncio.Future] = {}
        self._next_id = 1
        self._auth_id: Optional[int] = None
        self._authenticated = False
        self._closed = True

    @property
    def authenticated(self) -> bool:
        return self._authenticated and not self._closed

    @property
    def connected(self) -> bool:
        return not self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self, host: str, port: int, password: str) -> None:
        if not self._closed:
            raise ConnectionClosed("RCON session already open")
        self.host, self.port = host, port
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.timeout)
        except (OSError, asyncio.TimeoutError) as e:
            raise AuthError(f"Could not connect to RCON at {host}:{port}: {e}") from e

        log.info("Connected to RCON server %s:%s", host, port)
        self._closed = False
        self._buffer = PacketBuffer()
        self._read_task = asyncio.get_running_loop().create_task(self._read_loop())

        self._auth_id = self._allocate_id()
        fut = self._register(self._auth_id)
        try:
            self._writer.write(encode_packet(self._auth_id, SERVERDATA_AUTH, password))
            await asyncio.wait_for(fut, timeout=self.timeout)
        except AuthError:
            await self.disconnect()
            raise
        except asyncio.TimeoutError:
            self._pending.pop(self._auth_id, None)
            await self.disconnect()
            raise AuthError("RCON authentication timed out")
        except ConnectionClosed as e:
            await self.disconnect()
            raise AuthError(f"Connection closed during RCON authentication: {e}") from e
        except (OSError, ProtocolError) as e:
            await self.disconnect()
            raise AuthError(f"RCON authentication failed: {e}") from e
        finally:
            self._auth_id = None

        self._authenticated = True
        log.debug("RCON authentication successful")

    async def send(self, command: str) -> str:
        if self._closed or self._writer is None:
            raise ConnectionClosed("RCON session is not connected")
        if not self._authenticated:
            raise ConnectionClosed("RCON session is not authenticated")

        request_id = self._allocate_id()
        packet = encode_packet(request_id, SERVERDATA_EXECCOMMAND, command)
        fut = self._register(request_id)
        try:
            self._writer.write(packet)
            await self._writer.drain()
        except (OSError, ConnectionError) as e:
            self._pending.pop(request_id, None)
            self._teardown(ConnectionClosed(f"RCON write failed: {e}"))
            raise ConnectionClosed(f"RCON write failed: {e}") from e

        try:
            response: Packet = await asyncio.wait_for(fut, timeout=self.timeout)
        except asyncio.TimeoutError:
            self._pending.pop(request_id, None)
            raise ResponseTimeout(f"No RCON response for {command!r} within {self.timeout}s")
        log.debug("RCON CMD: %s -> %r", command, response.body)
        return response.body

    async def disconnect(self) -> None:
        writer = self._writer
        self.close()
        if writer is not None:
            try:
                await writer.wait_closed()
            except (OSError, ConnectionError):
                pass

    def close(self) -> None:
        """Close the session without waiting; pending requests fail with ConnectionClosed."""
        if self._closed and self._writer is None:
            return
        self._teardown(ConnectionClosed("RCON session closed"))
        task = self._read_task
        self._read_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        log.info("Disconnected from RCON server")

    async def __aenter__(self) -> "RconClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.disconnect()

    def _allocate_id(self) -> int:
        while True:
            request_id = self._next_id
            self._next_id = 1 if self._next_id >= MAX_REQUEST_ID else self._next_id + 1
            if request_id not in self._pending:
                return request_id

    def _register(self, request_id: int) -> asyncio.Future:
        fut = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        return fut

    async def _read_loop(self) -> None:
        reader = self._reader
        try:
            while reader is not None:
                data = await reader.read(READ_CHUNK)
                if not data:
                    self._teardown(ConnectionClosed("RCON connection closed by server"))
                    return
                for packet in self._buffer.feed(data):
                    self._dispatch(packet)
        except asyncio.CancelledError:
            raise
        except ProtocolError as e:
            log.error("RCON framing error: %s", e)
            self._teardown(e)
        except (OSError, ConnectionError) as e:
            log.warning("RCON socket error: %s", e)
            self._teardown(ConnectionClosed(f"RCON socket error: {e}"))

    def _dispatch(self, packet: Packet) -> None:
        auth_id = self._auth_id
        if auth_id is not None and auth_id in self._pending:
            if packet.type == SERVERDATA_RESPONSE_VALUE:
                # some servers send an empty value packet ahead of the auth response
                return
            fut = self._pending.pop(auth_id)
            if not fut.done():
                if packet.request_id == AUTH_FAILED_ID:
                    fut.set_exception(AuthError("RCON authentication failed: invalid password"))
                elif packet.request_id != auth_id:
                    fut.set_exception(AuthError(f"Unexpected auth response id {packet.request_id}"))
                else:
                    fut.set_result(packet)
            return

        fut = self._pending.pop(packet.request_id, None)
        if fut is None:
            log.debug("Dropping RCON response with unknown id %s", packet.request_id)
            return
        if not fut.done():
            fut.set_result(packet)

    def _teardown(self, exc: Exception) -> None:
        self._closed = True
        self._authenticated = False
        pending, self._pending = self._pending, {}
        for fut in pending.values():
            if not fut.done():
                fut.set_exception(exc)
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is not None:
            try:
                writer.close()
            except (OSError, RuntimeError):
                pass
