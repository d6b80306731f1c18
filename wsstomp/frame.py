from typing import Any, Dict, Mapping, Optional, Union


class Frame:
    def __init__(
        self,
        command: str,
        headers: Optional[Mapping[str, str]] = None,
        body: Union[str, bytes] = "",
    ):
        if '\n' in command:
            raise RuntimeError(f"Invalid command {command}")
        self._command = command
        self._headers: Dict[str, str] = dict(headers or {})
        self._body = body or ""

    @property
    def command(self) -> str:
        return self._command

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def body(self) -> Union[str, bytes]:
        return self._body

    @property
    def is_heartbeat(self) -> bool:
        return self._command == HEARTBEAT

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return (
            self._command == other._command
            and self._headers == other._headers
            and self._body == other._body
        )

    def __hash__(self) -> int:
        return hash((self._command, tuple(self._headers.items()), self._body))

    def __repr__(self) -> str:
        headers = ''
        if self._headers:
            headers = ';'.join(f"{key}: {value}" for key, value in self._headers.items())
        return f'<Frame: {self._command} headers: {headers}>'


HEARTBEAT = 'HEARTBEAT'


def heartbeat_frame() -> Frame:
    return Frame(HEARTBEAT)
