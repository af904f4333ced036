import logging

from financeai.core.logging_config import RedactingFormatter


def format_message(msg, *args):
    record = logging.LogRecord("financeai.test", logging.INFO, __file__, 1, msg, args, None)
    return RedactingFormatter("%(message)s").format(record)


def test_secrets_and_pii_are_redacted():
    line = format_message(
        "user %s sent Authorization: Bearer abc.def-123 with card %s",
        "jane.doe@example.com",
        "4111 1111 1111 1111",
    )
    assert "jane.doe@example.com" not in line
    assert "abc.def-123" not in line
    assert "4111" not in line
    assert "<EMAIL>" in line
    assert "<TOKEN>" in line
    assert "<CARD>" in line


def test_api_keys_in_urls_are_redacted():
    line = format_message("GET https://example.test/v1?key=AIzaSyA1234567890abcdef")
    assert "AIzaSyA1234567890abcdef" not in line
    assert "key=<API_KEY>" in line


def test_plain_messages_pass_through():
    assert format_message("Created budget 'Food' for user 42") == "Created budget 'Food' for user 42"
