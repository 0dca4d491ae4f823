"""Token-budgeted responses.

Payloads are measured as compact JSON text run through a tiktoken
encoding, the same measure advertised to callers as ``max_tokens``.
"""

import json
import logging
import threading
from collections.abc import Callable
from typing import Any

import tiktoken

from ..core.models import BudgetedPayload

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


def serialize(payload: Any) -> str:
    """Canonical JSON text of a payload: compact, non-ASCII kept as is."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class ResponseBudgeter:
    """Cuts JSON-shaped payloads down to a token budget.

    Arrays lose elements from the end; objects keep their fields in order
    and stop admitting fields at the first scalar or object field that no
    longer fits. Elements themselves are never rewritten, so the result
    always has the shape of the input with fewer elements or fields.

    One instance can be shared across calls. The encoding tables are
    loaded on first use and dropped by :meth:`close`.
    """

    def __init__(
        self,
        encoding_name: str = DEFAULT_ENCODING,
        log: logging.Logger | None = None,
        encoding: tiktoken.Encoding | None = None,
    ) -> None:
        """Initialize the budgeter.

        Args:
            encoding_name: tiktoken encoding loaded on first use
            log: Logger receiving truncation events
            encoding: Already-built encoding to use instead of loading one
        """
        self.encoding_name = encoding.name if encoding is not None else encoding_name
        self.log = log or logger
        self._preset = encoding
        self._encoding: tiktoken.Encoding | None = encoding
        self._lock = threading.Lock()

    def _encoder(self) -> tiktoken.Encoding:
        encoding = self._encoding
        if encoding is None:
            with self._lock:
                if self._encoding is None:
                    self.log.debug(f"Loading tiktoken encoding {self.encoding_name}")
                    self._encoding = tiktoken.get_encoding(self.encoding_name)
                encoding = self._encoding
        return encoding

    def close(self) -> None:
        """Release the encoding tables; a later call loads them again."""
        with self._lock:
            self._encoding = self._preset

    def __enter__(self) -> "ResponseBudgeter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def count_text(self, text: str) -> int:
        return len(self._encoder().encode(text))

    def count_tokens(self, payload: Any) -> int:
        """Token count of the payload's canonical JSON text."""
        return self.count_text(serialize(payload))

    def limit(self, payload: Any, max_tokens: int) -> BudgetedPayload:
        """Fit ``payload`` into ``max_tokens``.

        ``truncated`` is true when the result differs from the input, or
        when even the reduced result is still over budget because a single
        element or field cannot be cut further.

        Raises:
            ValueError: If ``max_tokens`` is not positive
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")

        original_tokens = self.count_tokens(payload)
        if original_tokens <= max_tokens:
            return BudgetedPayload(payload=payload, truncated=False)

        if isinstance(payload, dict):
            result = self._limit_object(payload, max_tokens)
        elif isinstance(payload, list):
            result = self._limit_array(payload, max_tokens)
        else:
            result = payload

        final_tokens = self.count_tokens(result)
        truncated = result != payload or final_tokens > max_tokens
        if final_tokens > max_tokens:
            self.log.warning(
                f"Payload of {final_tokens} tokens cannot be reduced below {max_tokens}"
            )
        else:
            self.log.info(f"Truncated payload from {original_tokens} to {final_tokens} tokens")
        return BudgetedPayload(payload=result, truncated=truncated)

    def _limit_array(self, items: list[Any], max_tokens: int) -> list[Any]:
        size = self._largest_prefix(lambda prefix: prefix, items, max_tokens)
        return items[:size]

    def _limit_object(self, obj: dict[str, Any], max_tokens: int) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key, value in obj.items():
            if isinstance(value, list):
                baseline = self.count_tokens({**result, key: []})
                if baseline > max_tokens:
                    self.log.debug(f"No room for field '{key}', dropping it and later fields")
                    break
                size = self._largest_prefix(
                    lambda prefix: {**result, key: prefix}, value, max_tokens
                )
                if size < len(value):
                    self.log.debug(f"Field '{key}' cut to {size} of {len(value)} elements")
                result[key] = value[:size]
                continue

            candidate = {**result, key: value}
            if self.count_tokens(candidate) > max_tokens:
                self.log.debug(f"Field '{key}' does not fit, dropping it and later fields")
                break
            result[key] = value
        return result

    def _largest_prefix(
        self, wrap: Callable[[list[Any]], Any], items: list[Any], max_tokens: int
    ) -> int:
        """Largest n such that ``wrap(items[:n])`` fits, by binary search."""
        low, high = 0, len(items)
        while low < high:
            mid = (low + high + 1) // 2
            if self.count_tokens(wrap(items[:mid])) <= max_tokens:
                low = mid
            else:
                high = mid - 1
        return low
