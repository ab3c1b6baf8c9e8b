from __future__ import annotations

import logging

from attendance_sync.core.observability import OperationContext, get_correlation_id, get_sync_trigger, log_event


def test_operation_context_sets_and_restores_ids() -> None:
    assert get_correlation_id() is None

    with OperationContext("sync", trigger="manual") as operation:
        assert get_correlation_id() == operation.correlation_id
        assert get_sync_trigger() == "manual"
        with OperationContext("nested") as nested:
            assert get_correlation_id() == nested.correlation_id
        assert get_correlation_id() == operation.correlation_id

    assert get_correlation_id() is None
    assert get_sync_trigger() is None


def test_log_event_payload_shape(caplog) -> None:
    logger = logging.getLogger("tests.observability")

    with caplog.at_level(logging.INFO, logger="tests.observability"):
        with OperationContext("sync", trigger="interval") as operation:
            event = log_event(logger, "push_table_completed", {"synced": 2})

    assert event["event"] == "push_table_completed"
    assert event["correlation_id"] == operation.correlation_id
    assert event["trigger"] == "interval"
    assert event["payload"] == {"synced": 2}
    assert caplog.records[-1].getMessage() == "push_table_completed"
