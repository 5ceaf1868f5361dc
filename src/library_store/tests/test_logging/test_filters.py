import logging

from library_store.core.logging.filters import (
    REDACTED,
    CorrelationIdFilter,
    RedactFilter,
    mask_email,
    reset_correlation_id,
    set_correlation_id,
)


def make_record():
    # name, level, pathname, lineno, msg, args, exc_info
    return logging.LogRecord("test", logging.INFO, __file__, 1, "hello %s", ("world",), None)


def test_correlation_id_filter_defaults_to_dash():
    rec = make_record()
    token = set_correlation_id(None)
    try:
        assert CorrelationIdFilter().filter(rec) is True
        assert rec.correlation_id == "-"
    finally:
        reset_correlation_id(token)


def test_correlation_id_filter_uses_contextvar():
    rec = make_record()
    token = set_correlation_id("borrow-42")
    try:
        CorrelationIdFilter().filter(rec)
    finally:
        reset_correlation_id(token)

    assert rec.correlation_id == "borrow-42"


def test_correlation_id_filter_respects_record_extra():
    rec = make_record()
    rec.correlation_id = "explicit"
    token = set_correlation_id("context-id")
    try:
        CorrelationIdFilter().filter(rec)
    finally:
        reset_correlation_id(token)

    assert rec.correlation_id == "explicit"


def test_redact_filter_masks_sensitive_extras():
    rec = make_record()
    rec.password = "hunter2"
    rec.phone = "081234567890"
    rec.email = "jane.doe@example.com"
    rec.model = "User"

    assert RedactFilter().filter(rec) is True

    assert rec.password == REDACTED
    assert rec.phone == REDACTED
    assert rec.email == "j***@example.com"
    assert rec.model == "User"


def test_mask_email_leaves_other_text_alone():
    assert mask_email("no address here") == "no address here"
