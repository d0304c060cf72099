"""Advertiser campaign storage helpers and Ed25519 attestation tokens."""

from __future__ import annotations

import base64
import binascii
import json
import sqlite3
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

SIGNING_KEY_FILE = "advertiser_ed25519.key"

CAMPAIGN_COLUMNS = (
    "campaign_id, name, creative_url, creative_hash, creative_format, "
    "duration_ms, subsidy_sats, budget_total_sats, budget_spent_sats, "
    "active, created_at"
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS campaigns (
    campaign_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    creative_url TEXT NOT NULL,
    creative_hash TEXT NOT NULL DEFAULT '',
    creative_format TEXT NOT NULL,
    duration_ms INTEGER NOT NULL,
    subsidy_sats INTEGER NOT NULL,
    budget_total_sats INTEGER NOT NULL,
    budget_spent_sats INTEGER NOT NULL DEFAULT 0,
    active INTEGER NOT NULL DEFAULT 1,
    created_at INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    campaign_id TEXT NOT NULL,
    buyer_pubkey TEXT NOT NULL,
    started_at INTEGER NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    duration_ms INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS adv_payments (
    payment_hash TEXT PRIMARY KEY,
    campaign_id TEXT NOT NULL,
    buyer_pubkey TEXT NOT NULL,
    amount_sats INTEGER NOT NULL,
    paid_at INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_campaign ON sessions(campaign_id);
CREATE INDEX IF NOT EXISTS idx_adv_payments_campaign ON adv_payments(campaign_id);
"""

_FORMATS = (
    ((".mp4",), "video/mp4"),
    ((".webm",), "video/webm"),
    ((".png",), "image/png"),
    ((".jpg", ".jpeg"), "image/jpeg"),
    ((".gif",), "image/gif"),
)


@dataclass
class Campaign:
    """An advertiser campaign as stored in the ``campaigns`` table."""

    campaign_id: str
    name: str
    creative_url: str
    creative_hash: str
    creative_format: str
    duration_ms: int
    subsidy_sats: int
    budget_total_sats: int
    budget_spent_sats: int
    active: bool
    created_at: int

    @classmethod
    def from_row(cls, row: tuple[Any, ...]) -> "Campaign":
        """Build a campaign from a row selected with ``CAMPAIGN_COLUMNS``."""
        (cid, name, url, chash, fmt, dur, sub, total, spent, active, created) = row
        return cls(
            campaign_id=str(cid),
            name=str(name),
            creative_url=str(url),
            creative_hash=str(chash),
            creative_format=str(fmt),
            duration_ms=int(dur),
            subsidy_sats=int(sub),
            budget_total_sats=int(total),
            budget_spent_sats=int(spent),
            active=int(active) != 0,
            created_at=int(created),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class AttestationPayload:
    """What an attestation token signs: who watched which campaign, and when."""

    campaign_id: str
    buyer_pubkey: str
    timestamp: int
    duration_ms: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AttestationPayload":
        return cls(
            campaign_id=str(data["campaign_id"]),
            buyer_pubkey=str(data["buyer_pubkey"]),
            timestamp=int(data["timestamp"]),
            duration_ms=int(data["duration_ms"]),
        )


def init_db(conn: sqlite3.Connection) -> None:
    """Create the advertiser tables and indexes if they are missing."""
    conn.executescript(_SCHEMA)
    conn.commit()


def now_unix() -> int:
    """Seconds since the Unix epoch."""
    return max(int(time.time()), 0)


def load_campaigns(conn: sqlite3.Connection) -> list[Campaign]:
    """All campaigns, newest first; rows that cannot be read are skipped."""
    rows = conn.execute(
        f"SELECT {CAMPAIGN_COLUMNS} FROM campaigns ORDER BY created_at DESC"
    ).fetchall()
    campaigns = []
    for row in rows:
        try:
            campaigns.append(Campaign.from_row(row))
        except (TypeError, ValueError):
            continue
    return campaigns


def infer_format(url: str) -> str:
    """Guess a creative's media type from the extension of its URL."""
    lower = url.lower()
    for suffixes, media_type in _FORMATS:
        if lower.endswith(suffixes):
            return media_type
    return "application/octet-stream"


def canonical_json(payload: AttestationPayload) -> str:
    """Compact JSON in field order; this is the exact text that gets signed."""
    return json.dumps(payload.to_dict(), separators=(",", ":"), ensure_ascii=False)


def sign_attestation(key: Ed25519PrivateKey, payload: AttestationPayload) -> str:
    """Sign the payload and return the signature as standard base64."""
    signature = key.sign(canonical_json(payload).encode("utf-8"))
    return base64.b64encode(signature).decode("ascii")


def verify_attestation(
    public_key: Ed25519PublicKey, payload: AttestationPayload, token_b64: str
) -> bool:
    """True if ``token_b64`` is a valid signature of the payload by ``public_key``."""
    try:
        signature = base64.b64decode(token_b64, validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(signature) != 64:
        return False
    try:
        public_key.verify(signature, canonical_json(payload).encode("utf-8"))
    except InvalidSignature:
        return False
    return True


def load_or_create_signing_key(storage_dir: str | Path) -> Ed25519PrivateKey:
    """Load the 32-byte raw Ed25519 key from storage, generating it if absent."""
    key_path = Path(storage_dir) / SIGNING_KEY_FILE
    try:
        data = key_path.read_bytes()
    except OSError:
        data = b""
    if len(data) == 32:
        return Ed25519PrivateKey.from_private_bytes(data)
    key = Ed25519PrivateKey.generate()
    raw = key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    key_path.write_bytes(raw)
    print(f"Generated new Ed25519 signing key at {key_path}")
    return key