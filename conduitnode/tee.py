"""Trusted-manufacturer list and TEE device attestation checks."""

from __future__ import annotations

import binascii
import hashlib
import json
import secrets
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

BAD_REQUEST = 400
FORBIDDEN = 403


class AttestationError(Exception):
    """An attestation request was rejected; ``status`` is the HTTP status to report."""

    def __init__(self, message: str, status: int, extra: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.extra = dict(extra or {})

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


@dataclass
class TrustedManufacturer:
    pk_hex: str
    name: str
    added_at: str


class TrustList:
    """Manufacturer public keys trusted for device attestation, saved as JSON."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._items: list[TrustedManufacturer] = self._load()

    def _load(self) -> list[TrustedManufacturer]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return []
        return [
            TrustedManufacturer(str(m["pk_hex"]), str(m["name"]), str(m.get("added_at", "")))
            for m in raw
            if isinstance(m, dict) and "pk_hex" in m and "name" in m
        ]

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps([asdict(m) for m in self._items], indent=2), encoding="utf-8"
        )

    def items(self) -> list[TrustedManufacturer]:
        with self._lock:
            return list(self._items)

    def contains(self, pk_hex: str) -> bool:
        with self._lock:
            return any(m.pk_hex == pk_hex for m in self._items)

    def add(self, pk_hex: str, name: str) -> TrustedManufacturer:
        """Trust a manufacturer; raises ValueError if it is already trusted."""
        with self._lock:
            if any(m.pk_hex == pk_hex for m in self._items):
                raise ValueError("Manufacturer already trusted")
            entry = TrustedManufacturer(pk_hex=pk_hex, name=name, added_at=str(int(time.time())))
            self._items.append(entry)
            self._save()
        print(f"Trusted manufacturer added: {name} ({pk_hex[:16]})")
        return entry

    def remove(self, pk_hex: str) -> None:
        """Stop trusting a manufacturer; raises KeyError if it was not trusted."""
        with self._lock:
            kept = [m for m in self._items if m.pk_hex != pk_hex]
            if len(kept) == len(self._items):
                raise KeyError("Manufacturer not in trust list")
            self._items = kept
            self._save()
        print(f"Trusted manufacturer removed: {pk_hex[:16]}")


def _decode_hex(value: str, field_name: str) -> bytes:
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        raise AttestationError(f"invalid {field_name}", BAD_REQUEST) from None


def _p256_key(data: bytes, message: str) -> ec.EllipticCurvePublicKey:
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), data)
    except ValueError:
        raise AttestationError(message, BAD_REQUEST) from None


def _check_der(signature: bytes) -> None:
    try:
        decode_dss_signature(signature)
    except ValueError:
        raise AttestationError("invalid DER signature", BAD_REQUEST) from None


def _verify(key: ec.EllipticCurvePublicKey, signature: bytes, digest: bytes, failure: str) -> None:
    try:
        key.verify(signature, digest, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        raise AttestationError(failure, FORBIDDEN) from None


def attest_device(
    trust_list: TrustList,
    dev_pk_hex: str,
    device_pk_g2_hex: str,
    manufacturer_pk_hex: str,
    model: str,
    firmware_hash: str,
    manufacturer_sig_hex: str,
) -> dict[str, Any]:
    """Check a device certificate and return a fresh challenge nonce."""
    if not trust_list.contains(manufacturer_pk_hex):
        raise AttestationError(
            "Manufacturer not in trust list",
            FORBIDDEN,
            {"manufacturer_pk_hex": manufacturer_pk_hex},
        )
    dev_pk = _decode_hex(dev_pk_hex, "dev_pk_hex")
    device_pk_g2 = _decode_hex(device_pk_g2_hex, "device_pk_g2_hex")
    manufacturer_sig = _decode_hex(manufacturer_sig_hex, "manufacturer_sig_hex")
    manufacturer_pk = _decode_hex(manufacturer_pk_hex, "manufacturer_pk_hex")

    mfr_key = _p256_key(manufacturer_pk, "invalid manufacturer P-256 key")
    body = dev_pk + device_pk_g2 + model.encode("utf-8") + firmware_hash.encode("utf-8")
    digest = hashlib.sha256(body).digest()
    _check_der(manufacturer_sig)
    _verify(mfr_key, manufacturer_sig, digest, "certificate verification failed")

    return {
        "status": "challenge",
        "nonce_hex": secrets.token_bytes(32).hex(),
        "device_pk_g2_hex": device_pk_g2_hex,
    }


def verify_challenge_response(dev_pk_hex: str, nonce_hex: str, signature_hex: str) -> dict[str, Any]:
    """Check the device's signature over SHA-256(nonce)."""
    dev_pk = _decode_hex(dev_pk_hex, "dev_pk_hex")
    try:
        nonce = binascii.unhexlify(nonce_hex)
    except (binascii.Error, ValueError):
        nonce = b""
    if len(nonce) != 32:
        raise AttestationError("invalid nonce_hex", BAD_REQUEST)
    signature = _decode_hex(signature_hex, "signature_hex")

    dev_key = _p256_key(dev_pk, "invalid P-256 device key")
    digest = hashlib.sha256(nonce).digest()
    _check_der(signature)
    _verify(dev_key, signature, digest, "challenge verification failed")
    return {"status": "attested", "dev_pk_hex": dev_pk_hex}