"""Advertiser role: campaigns, viewing sessions, attestation tokens and subsidy payments."""

from __future__ import annotations

import sqlite3
import sys
import threading
import uuid
from typing import Any, Callable, Mapping

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from conduitnode.attestation import (
    CAMPAIGN_COLUMNS,
    AttestationPayload,
    Campaign,
    infer_format,
    init_db,
    load_campaigns,
    now_unix,
    sign_attestation,
    verify_attestation,
)

DEFAULT_CAMPAIGN_NAME = "Unnamed Campaign"
DEFAULT_DURATION_MS = 15000
DEFAULT_SUBSIDY_SATS = 50
DEFAULT_BUDGET_TOTAL_SATS = 1_000_000
SESSION_WINDOW_SECS = 300
MAX_ACTIVE_SESSIONS = 5

PayFunction = Callable[[str], str]


class AdvertiserError(Exception):
    """A rejected advertiser request; ``status`` is the HTTP status, ``body`` the JSON reply."""

    def __init__(self, status: int, body: dict[str, Any]) -> None:
        super().__init__(body.get("error") or body.get("status") or "advertiser error")
        self.status = status
        self.body = body


def _error(status: int, message: str, **extra: Any) -> AdvertiserError:
    return AdvertiserError(status, {"error": message, **extra})


def _pay_error(status: int, message: str) -> AdvertiserError:
    return AdvertiserError(status, {"status": message, "payment_hash": None})


def _as_u64(value: Any, default: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 0xFFFFFFFFFFFFFFFF:
        return value
    return default


def _as_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


class AdvertiserService:
    """Campaign store and attestation issuer backed by an SQLite connection."""

    def __init__(self, conn: sqlite3.Connection, signing_key: Ed25519PrivateKey | None) -> None:
        self._conn = conn
        self._signing_key = signing_key
        self._lock = threading.Lock()
        with self._lock:
            init_db(self._conn)

    def pubkey_hex(self) -> str:
        """Hex of the raw Ed25519 public key, or an empty string without a key."""
        if self._signing_key is None:
            return ""
        raw = self._signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw
        )
        return raw.hex()

    def list_campaigns(self) -> dict[str, Any]:
        """Active campaigns, newest first, with this advertiser's public key."""
        with self._lock:
            campaigns = load_campaigns(self._conn)
        return {
            "campaigns": [c.to_dict() for c in campaigns if c.active],
            "advertiser_pubkey": self.pubkey_hex(),
        }

    def get_campaign(self, campaign_id: str) -> dict[str, Any]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {CAMPAIGN_COLUMNS} FROM campaigns WHERE campaign_id = ?",
                (campaign_id,),
            ).fetchone()
        if row is None:
            raise _error(404, "Campaign not found")
        return Campaign.from_row(row).to_dict()

    def creative_url(self, campaign_id: str) -> str:
        """Where an active campaign's creative is hosted (the redirect target)."""
        with self._lock:
            row = self._conn.execute(
                "SELECT creative_url FROM campaigns WHERE campaign_id = ? AND active = 1",
                (campaign_id,),
            ).fetchone()
        if row is None:
            raise _error(404, "Campaign not found or inactive")
        return str(row[0])

    def create_campaign(self, request: Mapping[str, Any]) -> dict[str, Any]:
        name = _as_str(request.get("name"), DEFAULT_CAMPAIGN_NAME)
        creative_url = _as_str(request.get("creative_url"), "")
        duration_ms = _as_u64(request.get("duration_ms"), DEFAULT_DURATION_MS)
        subsidy_sats = _as_u64(request.get("subsidy_sats"), DEFAULT_SUBSIDY_SATS)
        budget_total = _as_u64(request.get("budget_total_sats"), DEFAULT_BUDGET_TOTAL_SATS)

        if not creative_url:
            raise _error(400, "creative_url is required")

        content_type = request.get("content_type")
        creative_format = (
            content_type if isinstance(content_type, str) else infer_format(creative_url)
        )
        creative_hash = _as_str(request.get("creative_hash"), "")

        campaign_id = str(uuid.uuid4())
        with self._lock:
            self._conn.execute(
                f"INSERT INTO campaigns ({CAMPAIGN_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, 1, ?)",
                (
                    campaign_id,
                    name,
                    creative_url,
                    creative_hash,
                    creative_format,
                    duration_ms,
                    subsidy_sats,
                    budget_total,
                    now_unix(),
                ),
            )
            self._conn.commit()
        print(f"[advertiser] Campaign created: {name} → {creative_url} ({campaign_id})")
        return {
            "campaign_id": campaign_id,
            "name": name,
            "creative_url": creative_url,
            "creative_format": creative_format,
        }

    def clear_campaigns(self) -> dict[str, int]:
        """Delete every campaign, session and payment record."""
        with self._lock:
            try:
                deleted = self._conn.execute("DELETE FROM campaigns").rowcount
            except sqlite3.Error:
                deleted = 0
            for table in ("sessions", "adv_payments"):
                try:
                    self._conn.execute(f"DELETE FROM {table}")
                except sqlite3.Error:
                    pass
            self._conn.commit()
        print(f"[advertiser] Cleared {deleted} campaigns")
        return {"deleted": deleted}

    def start_session(self, campaign_id: str, buyer_pubkey: str) -> dict[str, Any]:
        """Begin a viewing session for a buyer."""
        with self._lock:
            row = self._conn.execute(
                "SELECT duration_ms, budget_total_sats, budget_spent_sats FROM campaigns "
                "WHERE campaign_id = ? AND active = 1",
                (campaign_id,),
            ).fetchone()
            if row is None:
                raise _error(404, "Campaign not found or inactive")
            duration_ms, budget_total, budget_spent = (int(v) for v in row)
            if budget_spent >= budget_total:
                raise _error(410, "Campaign budget exhausted")
            active_count = self._conn.execute(
                "SELECT COUNT(*) FROM sessions WHERE campaign_id = ? AND buyer_pubkey = ? "
                "AND completed = 0 AND started_at > ?",
                (campaign_id, buyer_pubkey, now_unix() - SESSION_WINDOW_SECS),
            ).fetchone()[0]
            if active_count >= MAX_ACTIVE_SESSIONS:
                raise _error(429, "Too many active sessions")
            session_id = str(uuid.uuid4())
            self._conn.execute(
                "INSERT INTO sessions (session_id, campaign_id, buyer_pubkey, started_at, "
                "completed, duration_ms) VALUES (?, ?, ?, ?, 0, ?)",
                (session_id, campaign_id, buyer_pubkey, now_unix(), duration_ms),
            )
            self._conn.commit()
        print(
            f"[advertiser] Session started: {session_id} for campaign {campaign_id} "
            f"by {buyer_pubkey[:8]}"
        )
        return {"session_id": session_id, "duration_ms": duration_ms}

    def complete_session(
        self, campaign_id: str, session_id: str, buyer_pubkey: str
    ) -> dict[str, Any]:
        """Finish a session whose viewing time has elapsed and issue an attestation token."""
        with self._lock:
            row = self._conn.execute(
                "SELECT started_at, completed, duration_ms, buyer_pubkey FROM sessions "
                "WHERE session_id = ? AND campaign_id = ?",
                (session_id, campaign_id),
            ).fetchone()
            if row is None:
                raise _error(404, "Session not found")
            started_at, completed, duration_ms, stored_pubkey = row
            started_at, completed, duration_ms = int(started_at), int(completed), int(duration_ms)
            if stored_pubkey != buyer_pubkey:
                raise _error(403, "buyer_pubkey mismatch")
            if completed != 0:
                raise _error(409, "Session already completed")
            elapsed_ms = max(now_unix() - started_at, 0) * 1000
            if elapsed_ms < duration_ms:
                raise _error(
                    412,
                    "Ad viewing not yet complete",
                    elapsed_ms=elapsed_ms,
                    required_ms=duration_ms,
                )
            if self._signing_key is None:
                raise _error(503, "Advertiser role not enabled")
            self._conn.execute(
                "UPDATE sessions SET completed = 1 WHERE session_id = ?", (session_id,)
            )
            self._conn.commit()
        payload = AttestationPayload(
            campaign_id=campaign_id,
            buyer_pubkey=buyer_pubkey,
            timestamp=now_unix(),
            duration_ms=duration_ms,
        )
        token = sign_attestation(self._signing_key, payload)
        print(
            f"[advertiser] Attestation issued: campaign={campaign_id} buyer={buyer_pubkey[:8]}"
        )
        return {
            "token": token,
            "payload": payload.to_dict(),
            "advertiser_pubkey": self.pubkey_hex(),
        }

    def pay_invoice(
        self,
        bolt11_invoice: str,
        attestation_token: str,
        payload: AttestationPayload | Mapping[str, Any],
        pay: PayFunction,
    ) -> dict[str, Any]:
        """Validate an attestation, reserve the subsidy and pay the invoice.

        ``pay`` sends the invoice and returns its payment hash as hex; it raises
        ValueError for an invoice that cannot be parsed and any other exception
        when sending fails (the reserved subsidy is then returned to the budget).
        """
        if self._signing_key is None:
            raise AdvertiserError(503, {"status": "advertiser_not_enabled"})
        if not isinstance(payload, AttestationPayload):
            payload = AttestationPayload.from_dict(dict(payload))
        if not verify_attestation(self._signing_key.public_key(), payload, attestation_token):
            raise _pay_error(403, "invalid_attestation")

        with self._lock:
            row = self._conn.execute(
                "SELECT subsidy_sats, budget_total_sats, budget_spent_sats FROM campaigns "
                "WHERE campaign_id = ? AND active = 1",
                (payload.campaign_id,),
            ).fetchone()
            if row is None:
                raise _pay_error(404, "campaign_not_found")
            subsidy_sats, budget_total, budget_spent = (int(v) for v in row)
            if budget_spent + subsidy_sats > budget_total:
                raise _pay_error(402, "budget_exhausted")
            self._conn.execute(
                "UPDATE campaigns SET budget_spent_sats = budget_spent_sats + ? "
                "WHERE campaign_id = ?",
                (subsidy_sats, payload.campaign_id),
            )
            self._conn.commit()

        try:
            payment_hash_hex = pay(bolt11_invoice)
        except ValueError as exc:
            raise _pay_error(400, f"invalid_invoice: {exc}") from exc
        except Exception as exc:  # noqa: BLE001 - any send failure refunds the budget
            print(f"[advertiser] Payment failed: {exc}", file=sys.stderr)
            with self._lock:
                try:
                    self._conn.execute(
                        "UPDATE campaigns SET budget_spent_sats = budget_spent_sats - ? "
                        "WHERE campaign_id = ?",
                        (subsidy_sats, payload.campaign_id),
                    )
                    self._conn.commit()
                except sqlite3.Error:
                    pass
            raise _pay_error(500, f"payment_failed: {exc}") from exc

        print(
            f"[advertiser] Payment sent: {subsidy_sats} sats for campaign "
            f"{payload.campaign_id} (hash: {payment_hash_hex})"
        )
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT OR REPLACE INTO adv_payments (payment_hash, campaign_id, "
                    "buyer_pubkey, amount_sats, paid_at) VALUES (?, ?, ?, ?, ?)",
                    (
                        payment_hash_hex,
                        payload.campaign_id,
                        payload.buyer_pubkey,
                        subsidy_sats,
                        now_unix(),
                    ),
                )
                self._conn.commit()
            except sqlite3.Error:
                pass
        return {"status": "payment_sent", "payment_hash": payment_hash_hex}

    def info(self) -> dict[str, Any]:
        """Summary of campaigns and subsidy payments made."""
        with self._lock:
            campaigns = load_campaigns(self._conn)
            try:
                total_payments = self._conn.execute(
                    "SELECT COUNT(*) FROM adv_payments"
                ).fetchone()[0]
            except sqlite3.Error:
                total_payments = 0
            try:
                total_spent = self._conn.execute(
                    "SELECT COALESCE(SUM(amount_sats), 0) FROM adv_payments"
                ).fetchone()[0]
            except sqlite3.Error:
                total_spent = 0
        return {
            "enabled": True,
            "advertiser_pubkey": self.pubkey_hex(),
            "campaign_count": len(campaigns),
            "total_payments": int(total_payments),
            "total_spent_sats": int(total_spent),
        }