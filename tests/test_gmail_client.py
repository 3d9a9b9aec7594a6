"""
Tests for mail_archiver/gmail_client.py.
"""
from unittest.mock import MagicMock

import pytest
import requests

from mail_archiver.errors import GmailApiError, ThreadGoneError
from mail_archiver.gmail_client import GmailClient


def _response(status_code, json_body=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_body
    return response


@pytest.fixture
def client():
    gmail = GmailClient(base_url="https://gmail.test/v1/users/me", timeout=30,
                        not_found_codes=[404], retryable_codes=[429, 500, 503])
    gmail.session = MagicMock()
    return gmail


class TestArchiveThread:

    def test_removes_inbox_label(self, client):
        client.session.post.return_value = _response(200, {"id": "gm-1"})

        client.archive_thread("token", "gm-1")

        args, kwargs = client.session.post.call_args
        assert args[0] == "https://gmail.test/v1/users/me/threads/gm-1/modify"
        assert kwargs["json"] == {"removeLabelIds": ["INBOX"]}
        assert kwargs["headers"]["Authorization"] == "Bearer token"
        assert kwargs["timeout"] == 30

    def test_not_found_raises_thread_gone(self, client):
        client.session.post.return_value = _response(404)
        with pytest.raises(ThreadGoneError) as exc:
            client.archive_thread("token", "gm-1")
        assert exc.value.status_code == 404

    def test_rate_limit_is_retryable(self, client):
        client.session.post.return_value = _response(429, {"error": {"message": "Rate limit exceeded"}})
        with pytest.raises(GmailApiError) as exc:
            client.archive_thread("token", "gm-1")
        assert exc.value.retryable is True
        assert exc.value.status_code == 429
        assert "Rate limit exceeded" in str(exc.value)

    def test_forbidden_is_not_retryable(self, client):
        client.session.post.return_value = _response(403, text="insufficient scope")
        with pytest.raises(GmailApiError) as exc:
            client.archive_thread("token", "gm-1")
        assert exc.value.retryable is False
        assert "insufficient scope" in str(exc.value)

    def test_network_error_wrapped(self, client):
        client.session.post.side_effect = requests.exceptions.Timeout("read timed out")
        with pytest.raises(GmailApiError) as exc:
            client.archive_thread("token", "gm-1")
        assert exc.value.status_code is None

    def test_classification_is_configurable(self, client):
        client.not_found_codes = frozenset({404, 410})
        client.session.post.return_value = _response(410)
        with pytest.raises(ThreadGoneError):
            client.archive_thread("token", "gm-1")
