"""
OpaqueCodec - Keeps non-serializable values out of the expression evaluator.

Callables, arbitrary objects and other opaque references are swapped for
generated string tokens before an expression sees its input, and swapped
back in the expression output. Expressions can therefore move such values
around (e.g. pass a function returned by one node as an argument of the
next) without ever being able to inspect or call them.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict

from flow_orchestrator.util.const import OPAQUE_TOKEN_PREFIX, OPAQUE_TOKEN_SUFFIX

JSON_SCALARS = (str, int, float, bool, type(None))


class OpaqueCodec:
    """
    Boundary codec for one expression evaluation.

    The side table lives as long as the codec, so use a fresh instance per
    evaluation:

        codec = OpaqueCodec()
        output = evaluate(expression, codec.encode(data))
        output = codec.decode(output)
    """

    def __init__(self):
        self._table: Dict[str, Any] = {}
        self._tokens: Dict[int, str] = {}

    @staticmethod
    def is_token(value: Any) -> bool:
        return (
            isinstance(value, str)
            and value.startswith(OPAQUE_TOKEN_PREFIX)
            and value.endswith(OPAQUE_TOKEN_SUFFIX)
        )

    def _token_for(self, value: Any) -> str:
        # The same object always maps to the same token within one evaluation
        token = self._tokens.get(id(value))
        if token is None:
            token = f"{OPAQUE_TOKEN_PREFIX}{uuid.uuid4().hex}{OPAQUE_TOKEN_SUFFIX}"
            self._tokens[id(value)] = token
            self._table[token] = value
        return token

    def encode(self, value: Any) -> Any:
        """Return a JSON-shaped copy of value with opaque leaves tokenized."""
        if isinstance(value, JSON_SCALARS):
            return value
        if isinstance(value, dict):
            return {
                (k if isinstance(k, str) else str(k)): self.encode(v)
                for k, v in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self.encode(v) for v in value]
        return self._token_for(value)

    def decode(self, value: Any) -> Any:
        """Replace every known token in value with its original object."""
        if isinstance(value, str):
            return self._table.get(value, value)
        if isinstance(value, dict):
            return {k: self.decode(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.decode(v) for v in value]
        return value
