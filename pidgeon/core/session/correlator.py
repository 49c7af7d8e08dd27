from typing import Any

from pidgeon.core.errors import DuplicateIdError


class RequestCorrelator:
    """
    Matches asynchronous replies to the requests that caused them.

    Identifiers come from a counter owned by the instance: the first one
    is 1 and every following one is strictly greater, so an id is never
    reused while its request is pending. The context stored with an id
    is opaque to the correlator; it is handed back exactly once, by
    `resolve()` or `drain_all()`.
    """

    def __init__(self) -> None:
        self._last_id = 0
        self._pending: dict[int, Any] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def last_id(self) -> int:
        return self._last_id

    def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    def track(self, request_id: int, context: Any) -> None:
        if request_id in self._pending:
            raise DuplicateIdError(f"Request {request_id} is already pending")
        self._pending[request_id] = context

    def resolve(self, request_id: int | None) -> Any | None:
        """Forget `request_id` and return its context, None if unknown."""
        if request_id is None:
            return None
        return self._pending.pop(request_id, None)

    def drain_all(self) -> list[tuple[int, Any]]:
        """Forget every pending request, returned in issue order."""
        drained = sorted(self._pending.items(), key=lambda item: item[0])
        self._pending.clear()
        return drained
