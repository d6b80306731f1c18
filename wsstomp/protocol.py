# -*- coding:utf-8 -*-
import logging
import re
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from wsstomp.frame import Frame, heartbeat_frame
from wsstomp.stomp import Commands, Headers, Responses, Stomp, NEWLINE, NULL

logger = logging.getLogger("wsstomp.protocol")

HeadersType = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class StompProtocol:
    """STOMP frame codec.

    ``build_frame``, ``parse_frame`` and ``parse_frames`` are pure. The
    ``feed_data`` / ``pop_frames`` pair keeps the unterminated tail of the
    last payload and prepends it to the next one.

    Payloads may be text or bytes. Frames are scanned on their UTF-8 bytes;
    a body that is not valid UTF-8 is handed out as ``bytes``.
    """

    HEART_BEAT = b"\n"
    EOF = b"\x00"
    BOUNDARY = re.compile(rb"\r?\n\r?\n")

    ESCAPE = {"\n": "\\n", ":": "\\c", "\\": "\\\\", "\r": "\\r"}
    UNESCAPE = {"n": "\n", "c": ":", "\\": "\\", "r": "\r"}

    # CONNECT and CONNECTED headers are never escaped
    RAW_HEADER_COMMANDS = (Commands.CONNECT, Responses.CONNECTED)

    def __init__(self, version: str = Stomp.V1_1) -> None:
        self._version = version
        self._partial = b""
        self._frames_ready: List[Frame] = []

    @property
    def version(self) -> str:
        return self._version

    @version.setter
    def version(self, value: str) -> None:
        self._version = value

    @property
    def partial(self) -> str:
        return self._decode(self._partial)

    def _decode(self, data: Union[str, bytes, bytearray]) -> str:
        if isinstance(data, (bytes, bytearray)):
            return bytes(data).decode("utf-8", errors="replace")
        if isinstance(data, str):
            return data
        raise TypeError("Must be bytes or string")

    def _encode(self, data: Union[str, bytes, bytearray]) -> bytes:
        if isinstance(data, str):
            return data.encode("utf-8")
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)
        raise TypeError("Must be bytes or string")

    def _decode_body(self, body: bytes) -> Union[str, bytes]:
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Body of %d bytes is not UTF-8, keeping bytes", len(body))
            return body

    def _escapes(self, command: str) -> bool:
        return self._version != Stomp.V1_0 and command not in self.RAW_HEADER_COMMANDS

    def _encode_header(self, value: Any) -> str:
        return "".join(self.ESCAPE.get(c, c) for c in "{}".format(value))

    def _decode_header(self, value: str) -> str:
        decoded = []
        chars = iter(value)

        for c in chars:
            if c != "\\":
                decoded.append(c)
                continue

            _next = next(chars, None)
            if _next is None:
                decoded.append(c)
            elif _next in self.UNESCAPE:
                decoded.append(self.UNESCAPE[_next])
            else:
                decoded.append(c)
                decoded.append(_next)

        return "".join(decoded)

    def build_frame(
        self,
        command: str,
        headers: Optional[HeadersType] = None,
        body: Union[str, bytes] = "",
    ) -> Union[str, bytes]:
        """Encodes one frame.

        The result is text, unless ``body`` is bytes that are not valid
        UTF-8. Then the whole frame is returned as bytes, so it can go out
        as a binary message.
        """
        if isinstance(body, (bytes, bytearray)):
            body = self._decode_body(bytes(body))
        body = body or ""

        escape = self._escapes(command)
        lines = [command]
        has_content_length = False

        for key, value in _header_items(headers):
            if key == Headers.CONTENT_LENGTH:
                has_content_length = True
            if escape:
                value = self._encode_header(value)
            lines.append(f"{key}:{value}")

        if body and not has_content_length:
            length = len(body) if isinstance(body, bytes) else utf8_length(body)
            lines.append(f"{Headers.CONTENT_LENGTH}:{length}")

        head = NEWLINE.join(lines) + NEWLINE + NEWLINE
        if isinstance(body, bytes):
            return head.encode("utf-8") + body + self.EOF

        return head + body + NULL

    def _parse_head(self, head: bytes) -> Tuple[str, Dict[str, str]]:
        lines = self._decode(head).split(NEWLINE)
        command = lines[0].strip()
        escape = self._escapes(command)

        # Walk the header lines backwards so the first occurrence of a
        # repeated key is the one left in the mapping.
        headers: Dict[str, str] = {}
        for line in reversed(lines[1:]):
            name, sep, value = line.partition(":")
            if not sep:
                continue
            value = value.strip()
            headers[name.strip()] = self._decode_header(value) if escape else value

        return command, dict(reversed(list(headers.items())))

    def _split_head(
        self, data: bytes, pos: int
    ) -> Optional[Tuple[str, Dict[str, str], int]]:
        match = self.BOUNDARY.search(data, pos)
        if match is None:
            return None

        command, headers = self._parse_head(data[pos:match.start()])
        return command, headers, match.end()

    def _content_length(self, headers: Mapping[str, str]) -> Optional[int]:
        value = headers.get(Headers.CONTENT_LENGTH)
        if value is None:
            return None

        try:
            length = int(value)
        except ValueError:
            logger.warning("Ignoring invalid content-length %r", value)
            return None

        return length if length >= 0 else None

    def _read_body(
        self, data: bytes, start: int, length: int
    ) -> Tuple[bytes, Optional[int]]:
        """Reads ``length`` bytes from ``start``.

        Returns the body and the index right after it, or ``None`` as index
        when fewer than ``length`` bytes are available.
        """
        end = start + length
        if len(data) < end:
            return data[start:], None

        return data[start:end], end

    def parse_frame(self, data: Union[str, bytes]) -> Frame:
        raw = self._encode(data)
        if not raw.strip(b"\r\n"):
            return heartbeat_frame()

        raw = raw.lstrip(b"\r\n")
        head = self._split_head(raw, 0)
        if head is None:
            command, headers = self._parse_head(raw.split(self.EOF, 1)[0])
            return Frame(command, headers, "")

        command, headers, start = head
        length = self._content_length(headers)

        if length is not None:
            body, _ = self._read_body(raw, start, length)
        else:
            end = raw.find(self.EOF, start)
            body = raw[start:] if end == -1 else raw[start:end]

        return Frame(command, headers, self._decode_body(body))

    def _read_frame(self, data: bytes, pos: int) -> Optional[Tuple[Frame, int]]:
        head = self._split_head(data, pos)
        if head is None:
            return None

        command, headers, start = head
        length = self._content_length(headers)

        if length is not None:
            body, body_end = self._read_body(data, start, length)
            if body_end is None:
                return None
            end = data.find(self.EOF, body_end)
        else:
            end = data.find(self.EOF, start)
            body = data[start:end]

        if end == -1:
            return None

        pos = end + 1
        while True:
            if data.startswith(b"\n", pos):
                pos += 1
            elif data.startswith(b"\r\n", pos):
                pos += 2
            else:
                break

        return Frame(command, headers, self._decode_body(body)), pos

    def _scan(self, data: bytes) -> Tuple[List[Frame], bytes]:
        frames: List[Frame] = []
        pos = 0

        while pos < len(data):
            if data.startswith(self.HEART_BEAT, pos):
                frames.append(heartbeat_frame())
                pos += 1
                continue

            if data.startswith(b"\r\n", pos):
                frames.append(heartbeat_frame())
                pos += 2
                continue

            result = self._read_frame(data, pos)
            if result is None:
                break

            frame, pos = result
            frames.append(frame)

        return frames, data[pos:]

    def parse_frames(
        self, data: Union[str, bytes]
    ) -> Tuple[List[Frame], Union[str, bytes]]:
        """Splits ``data`` into complete frames and the unterminated rest.

        The rest has the same type as ``data``.
        """
        frames, rest = self._scan(self._encode(data))
        if isinstance(data, str):
            # frames end on ASCII bytes, so the rest starts on a character
            return frames, rest.decode("utf-8")

        return frames, rest

    def feed_data(self, inp: Union[str, bytes, bytearray]) -> None:
        frames, self._partial = self._scan(self._partial + self._encode(inp))
        if self._partial:
            logger.debug("Holding %d bytes of partial frame", len(self._partial))

        self._frames_ready.extend(frames)

    def pop_frames(self) -> List[Frame]:
        frames = self._frames_ready
        self._frames_ready = []

        return frames

    def reset(self) -> None:
        self._frames_ready = []
        self._partial = b""


def _header_items(headers: Optional[HeadersType]) -> Iterable[Tuple[str, Any]]:
    if not headers:
        return []
    if isinstance(headers, Mapping):
        return headers.items()
    return headers


def utf8_length(value: str) -> int:
    return len(value.encode("utf-8"))
