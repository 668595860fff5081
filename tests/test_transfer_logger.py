"""
Tests for the structured transfer logger.

These tests verify:
- File results carry the file transfer id, the Drive file id and the name
- Failures are logged at WARNING with the error text
- Lifecycle events serialize UUIDs and enums as JSON strings
"""

import json
import logging
from uuid import uuid4

from app.models.transfer import SessionStatus
from app.monitoring.logger import TransferLogger


def logged_payload(record: logging.LogRecord) -> dict:
    prefix = "Transfer Event: "
    message = record.getMessage()
    assert message.startswith(prefix)
    return json.loads(message[len(prefix):])


class TestTransferLogger:

    def test_failed_file_result(self, caplog):
        session_id, file_transfer_id = uuid4(), uuid4()
        tlog = TransferLogger()

        with caplog.at_level(logging.INFO, logger="handoff.transfers"):
            tlog.log_file_result(session_id, file_transfer_id, "1AbC", "report.pdf", success=False, error="403")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        payload = logged_payload(record)
        assert payload["event"] == "file_transfer_failed"
        assert payload["session_id"] == str(session_id)
        assert payload["file_transfer_id"] == str(file_transfer_id)
        assert payload["source_file_id"] == "1AbC"
        assert payload["file_name"] == "report.pdf"
        assert payload["error"] == "403"

    def test_successful_file_result_has_no_error(self, caplog):
        tlog = TransferLogger()

        with caplog.at_level(logging.INFO, logger="handoff.transfers"):
            tlog.log_file_result(uuid4(), uuid4(), "1AbC", "report.pdf", success=True)

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        payload = logged_payload(record)
        assert payload["event"] == "file_transfer_completed"
        assert "error" not in payload

    def test_event_fields_are_json(self, caplog):
        user_id = uuid4()
        tlog = TransferLogger()

        with caplog.at_level(logging.INFO, logger="handoff.transfers"):
            tlog.log_event("transfer_finished", uuid4(), user_id=user_id, status=SessionStatus.COMPLETED)

        payload = logged_payload(caplog.records[-1])
        assert payload["user_id"] == str(user_id)
        assert payload["status"] == "completed"
