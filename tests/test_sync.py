"""
Tests for payload encryption and the cloud mirror.
"""

import json
import os
from unittest.mock import MagicMock, patch

import pytest
import requests
from cryptography.exceptions import InvalidTag

from nexus.core.sync import CloudMirror, decrypt_payload, encrypt_payload

KEY = os.urandom(32)


def test_encrypted_payload_layout():
    blob = encrypt_payload(b"memory body", KEY)

    assert len(blob) == 12 + 16 + len(b"memory body")
    assert b"memory body" not in blob
    assert decrypt_payload(blob, KEY) == b"memory body"


def test_nonce_differs_per_call():
    assert encrypt_payload(b"same", KEY)[:12] != encrypt_payload(b"same", KEY)[:12]


def test_wrong_key_is_rejected():
    blob = encrypt_payload(b"secret", KEY)
    with pytest.raises(InvalidTag):
        decrypt_payload(blob, os.urandom(32))


def test_truncated_payload_is_rejected():
    with pytest.raises(ValueError):
        decrypt_payload(b"short", KEY)


def test_simulated_mirror_succeeds_without_network():
    with patch("nexus.core.sync.requests.put") as mock_put:
        assert CloudMirror(endpoint=None).replicate("mem-1", "hello", KEY) is True
        mock_put.assert_not_called()


@patch("nexus.core.sync.requests.put")
def test_upload_sends_only_ciphertext(mock_put):
    mock_put.return_value = MagicMock()
    mirror = CloudMirror(endpoint="https://mirror.example/", bucket="vault-b", token="tok", timeout=3)

    assert mirror.replicate("mem-42", "private thought", KEY) is True

    url = mock_put.call_args.args[0]
    kwargs = mock_put.call_args.kwargs
    assert url == "https://mirror.example/vault-b/mem-42"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["timeout"] == 3
    assert b"private thought" not in kwargs["data"]
    assert json.loads(decrypt_payload(kwargs["data"], KEY)) == {"id": "mem-42", "content": "private thought"}


@patch("nexus.core.sync.requests.put")
def test_http_failure_returns_false(mock_put):
    mock_put.return_value.raise_for_status.side_effect = requests.HTTPError("503 Service Unavailable")
    assert CloudMirror(endpoint="https://mirror.example").replicate("mem-1", "x", KEY) is False


@patch("nexus.core.sync.requests.put")
def test_transport_failure_returns_false(mock_put):
    mock_put.side_effect = requests.ConnectionError("no route")
    assert CloudMirror(endpoint="https://mirror.example").replicate("mem-1", "x", KEY) is False
