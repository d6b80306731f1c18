from typing import Any, Callable, Dict, Optional


class Subscription:
    def __init__(
        self,
        client: Any,
        destination: str,
        id: Optional[str],
        handler: Optional[Callable[..., Any]] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        self._client = client
        self.destination = destination
        self.id = id
        self.handler = handler
        self.headers = headers or {}

    def unsubscribe(self) -> None:
        if self.id is None:
            return
        self._client.unsubscribe(self.id)

    def __repr__(self) -> str:
        return f"<Subscription: {self.id} destination: {self.destination}>"


class Transaction:
    def __init__(self, client: Any, id: str):
        self._client = client
        self.id = id

    def commit(self, headers: Optional[Dict[str, Any]] = None) -> None:
        self._client.commit(self.id, headers)

    def abort(self, headers: Optional[Dict[str, Any]] = None) -> None:
        self._client.abort(self.id, headers)

    def __repr__(self) -> str:
        return f"<Transaction: {self.id}>"
