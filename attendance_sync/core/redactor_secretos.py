from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any


_KEY_VALUE_PATTERNS = [
    re.compile(
        r'(?i)("?(?:access_token|refresh_token|token|password|password_hash|secret|api_key)"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^,\s}\]]+)'  # noqa: E501
    ),
    re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)([^\s,;'\"]+)"),
    re.compile(r"(?i)(\bbearer\s+)([A-Za-z0-9\-_.=]{8,})"),
]
_QUERY_TOKEN_PATTERN = re.compile(r"(?i)([?&](?:token|access_token)=)([^&\s]+)")


def redactar_texto(texto: str) -> str:
    redacted = texto
    for pattern in _KEY_VALUE_PATTERNS:
        redacted = pattern.sub(r"\1<REDACTED>", redacted)
    return _QUERY_TOKEN_PATTERN.sub(r"\1<REDACTED>", redacted)


def _redactar_valor(value: Any) -> Any:
    if isinstance(value, str):
        return redactar_texto(value)
    if isinstance(value, Mapping):
        return {key: _redactar_valor(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_redactar_valor(item) for item in value]
    return value


class LoggingSecretsFilter(logging.Filter):
    """Enmascara tokens bearer y contraseñas antes de que lleguen a cualquier handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redactar_texto(record.msg)

        if isinstance(record.args, Mapping):
            record.args = {key: _redactar_valor(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_redactar_valor(value) for value in record.args)

        extra_payload = getattr(record, "extra", None)
        if isinstance(extra_payload, Mapping):
            record.extra = {key: _redactar_valor(value) for key, value in extra_payload.items()}

        return True
