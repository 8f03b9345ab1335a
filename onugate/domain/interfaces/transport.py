"""Interface for the upstream HTTP transport."""

import abc
from dataclasses import dataclass
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class RawResult:
    """A response in the [200, 500) range, body decoded but otherwise untouched."""
    status_code: int
    body: Any
    reason: str = ""

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class Transport(abc.ABC):
    """Abstract Base Class for issuing calls to the upstream API."""

    @abc.abstractmethod
    async def call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
    ) -> RawResult:
        """Issues one HTTP call.

        Args:
            method: HTTP method ('GET' or 'POST').
            path: Path relative to the upstream base URL.
            params: Query parameters (GET).
            form: Form fields, sent as application/x-www-form-urlencoded (POST).

        Returns:
            The raw result for any response with a status code in [200, 500).

        Raises:
            TransportError: On network failure, timeout, 5xx or an unparseable 2xx body.
        """
        pass

    async def close(self) -> None:
        """Releases pooled connections."""
        return None
