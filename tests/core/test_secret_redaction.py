from __future__ import annotations

import logging

from attendance_sync.core.redactor_secretos import LoggingSecretsFilter, redactar_texto


def test_redactar_texto_masks_bearer_and_password() -> None:
    texto = "Authorization: Bearer abcdefghijklmnop password=hunter2 url=https://x/?token=zzz"

    redactado = redactar_texto(texto)

    assert "abcdefghijklmnop" not in redactado
    assert "hunter2" not in redactado
    assert "zzz" not in redactado
    assert redactado.count("<REDACTED>") == 3


def test_filter_redacts_args_and_extra() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "headers %s", ({"auth": "Bearer abcdefghijk123"},), None)
    record.extra = {"token": "token=secreto"}

    assert LoggingSecretsFilter().filter(record) is True

    assert "abcdefghijk123" not in record.getMessage()
    assert "secreto" not in str(record.extra)
