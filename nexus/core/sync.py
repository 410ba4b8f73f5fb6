"""
Cloud mirror: an opaque, best-effort replication sink.

Payloads are AES-256-GCM encrypted with the session key before they leave the
process. Without a configured endpoint uploads are simulated.
"""

import json
import os
from typing import Optional

import requests
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from util.logging import logger
from .config import (
    CLOUD_MIRROR_ENDPOINT, CLOUD_MIRROR_BUCKET, CLOUD_MIRROR_TOKEN, CLOUD_MIRROR_TIMEOUT_SEC
)

NONCE_BYTES = 12
TAG_BYTES = 16


def encrypt_payload(data: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM. Layout is nonce + tag + ciphertext."""
    nonce = os.urandom(NONCE_BYTES)
    cipher = Cipher(algorithms.AES(key), modes.GCM(nonce))
    encryptor = cipher.encryptor()
    ciphertext = encryptor.update(data) + encryptor.finalize()
    return nonce + encryptor.tag + ciphertext


def decrypt_payload(blob: bytes, key: bytes) -> bytes:
    if len(blob) < NONCE_BYTES + TAG_BYTES:
        raise ValueError("Encrypted payload too short")

    nonce = blob[:NONCE_BYTES]
    tag = blob[NONCE_BYTES:NONCE_BYTES + TAG_BYTES]
    ciphertext = blob[NONCE_BYTES + TAG_BYTES:]

    cipher = Cipher(algorithms.AES(key), modes.GCM(nonce, tag))
    decryptor = cipher.decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


class CloudMirror:
    """Replicates single records to a remote bucket."""

    def __init__(self, endpoint: Optional[str] = CLOUD_MIRROR_ENDPOINT,
                 bucket: str = CLOUD_MIRROR_BUCKET,
                 token: Optional[str] = CLOUD_MIRROR_TOKEN,
                 timeout: float = CLOUD_MIRROR_TIMEOUT_SEC):
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.bucket = bucket
        self.token = token
        self.timeout = timeout

    def replicate(self, record_id: str, content: str, key: bytes) -> bool:
        """Upload one encrypted record. Returns False when the upload failed."""
        body = json.dumps({"id": record_id, "content": content}).encode("utf-8")
        blob = encrypt_payload(body, key)

        if self.endpoint is None:
            logger.log_sync_operation(record_id, "success", {
                "bucket": self.bucket, "bytes": len(blob), "simulated": True
            })
            return True

        headers = {"Content-Type": "application/octet-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = requests.put(
                f"{self.endpoint}/{self.bucket}/{record_id}",
                data=blob,
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.log_sync_operation(record_id, "failed", {"bucket": self.bucket, "error": str(e)})
            return False

        logger.log_sync_operation(record_id, "success", {"bucket": self.bucket, "bytes": len(blob)})
        return True
