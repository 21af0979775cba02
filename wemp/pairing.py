"""Pairing: link an official-account user to a verifier on another channel.

The user asks for a code here, then sends it to the bot on another channel
(Telegram, CLI, ...), which calls :meth:`PairingRegistry.verify_pairing_code`.
A paired user gets routed to the full personal-assistant agent.

Storage (under the data dir):
    paired-users.json   {"<accountId>:<openId>": {"pairedAt", "pairedBy", ...}}
    pending-codes.json  {"<code>": {"openId", "accountId", "createdAt"}}

Codes expire lazily: nothing sweeps them in the background, every read of
the pending file drops the stale ones.
"""

from __future__ import annotations

import hmac
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from wemp.constants import PAIRING_CODE_EXPIRY_MS
from wemp.errors import ExpiredError, NotFoundError, Result, err, ok
from wemp.storage import JsonStore, get_data_dir

PAIRED_USERS_FILE = "paired-users.json"
PENDING_CODES_FILE = "pending-codes.json"

# Re-draws on collision with another owner's live code before giving up
_MAX_MINT_ATTEMPTS = 20


def _now_ms() -> int:
    return int(time.time() * 1000)


def user_key(account_id: str, open_id: str) -> str:
    return f"{account_id}:{open_id}"


# ── types ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class PairingOwner:
    """The official-account identity a pairing code belongs to."""

    account_id: str
    open_id: str


@dataclass(slots=True)
class PairedUser:
    paired_at: int
    paired_by: str
    paired_by_name: str | None = None
    paired_by_channel: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"pairedAt": self.paired_at, "pairedBy": self.paired_by}
        if self.paired_by_name is not None:
            data["pairedByName"] = self.paired_by_name
        if self.paired_by_channel is not None:
            data["pairedByChannel"] = self.paired_by_channel
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PairedUser:
        return cls(
            paired_at=int(data.get("pairedAt", 0)),
            paired_by=str(data.get("pairedBy", "")),
            paired_by_name=data.get("pairedByName"),
            paired_by_channel=data.get("pairedByChannel"),
        )


@dataclass
class PairingTokens:
    """Bearer tokens that authorize verification requests from other channels.

    ``by_account`` overrides ``default``. With neither set, verification for
    that account must be refused by the caller.
    """

    default: str | None = None
    by_account: dict[str, str] = field(default_factory=dict)

    def get_api_token(self, account_id: str) -> str | None:
        return self.by_account.get(account_id) or self.default or None

    def set_api_token(self, account_id: str, token: str | None) -> None:
        t = (token or "").strip()
        if not t:
            return
        self.by_account[account_id] = t

    def check(self, account_id: str, presented: str | None) -> bool:
        expected = self.get_api_token(account_id)
        if not expected or not presented:
            return False
        return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))

    def any_configured(self) -> bool:
        return bool(self.default or any(self.by_account.values()))

    def matches_any(self, presented: str | None) -> bool:
        """Whether *presented* equals some configured token, for any account."""
        if not presented:
            return False
        candidates = [t for t in (self.default, *self.by_account.values()) if t]
        matches = [hmac.compare_digest(t.encode("utf-8"), presented.encode("utf-8")) for t in candidates]
        return any(matches)


# ── registry ────────────────────────────────────────────────────────────────


class PairingRegistry:
    """Issues and verifies pairing codes and keeps the paired-user registry."""

    def __init__(
        self,
        data_dir: Path | None = None,
        tokens: PairingTokens | None = None,
        ttl_ms: int = PAIRING_CODE_EXPIRY_MS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        base = data_dir or get_data_dir()
        self._users: JsonStore[dict[str, dict[str, Any]]] = JsonStore(base / PAIRED_USERS_FILE, {})
        self._codes: JsonStore[dict[str, dict[str, Any]]] = JsonStore(base / PENDING_CODES_FILE, {})
        self.tokens = tokens or PairingTokens()
        self.ttl_ms = ttl_ms
        self._clock = clock

    # ------------------------------------------------------------------
    # Pending codes
    # ------------------------------------------------------------------

    def _is_expired(self, info: dict[str, Any], now: int) -> bool:
        return now - int(info.get("createdAt", 0)) > self.ttl_ms

    def _live_codes(self) -> dict[str, dict[str, Any]]:
        """Pending codes with stale entries dropped (and the drop persisted)."""
        codes = self._codes.read()
        now = self._clock()
        live = {code: info for code, info in codes.items() if not self._is_expired(info, now)}
        if len(live) != len(codes):
            logger.debug(f"Discarding {len(codes) - len(live)} expired pairing code(s)")
            self._codes.write(live)
        return live

    def generate_pairing_code(self, account_id: str, open_id: str) -> str:
        """Return the live code for this user, minting one if there is none."""
        codes = self._live_codes()

        for code, info in codes.items():
            if info.get("accountId") == account_id and info.get("openId") == open_id:
                return code

        code = ""
        for _ in range(_MAX_MINT_ATTEMPTS):
            code = str(secrets.randbelow(900_000) + 100_000)
            if code not in codes:
                break
        else:
            raise RuntimeError("could not mint a unique pairing code")

        codes = dict(codes)
        codes[code] = {"openId": open_id, "accountId": account_id, "createdAt": self._clock()}
        self._codes.write(codes)
        logger.info(f"[wemp:{account_id}] Pairing code issued for {open_id}")
        return code

    def peek_code(self, code: str) -> PairingOwner | None:
        """Owner of a live code, without consuming it."""
        info = self._live_codes().get(code)
        if info is None:
            return None
        return PairingOwner(account_id=info["accountId"], open_id=info["openId"])

    def lookup_code(self, code: str) -> Result[PairingOwner]:
        """Like :meth:`peek_code`, but tells an expired code from an unknown one."""
        info = self._codes.read().get(code)
        if info is None:
            return err(NotFoundError(f"pairing code {code} not found"))
        if self._is_expired(info, self._clock()):
            self._live_codes()
            return err(ExpiredError(f"pairing code {code} expired"))
        return ok(PairingOwner(account_id=info["accountId"], open_id=info["openId"]))

    def verify_pairing_code(
        self,
        code: str,
        verifier_id: str,
        verifier_name: str | None = None,
        channel: str | None = None,
    ) -> PairingOwner | None:
        """Consume *code* and pair its owner. Returns None if unknown or expired."""
        codes = self._live_codes()
        info = codes.get(code)
        if info is None:
            return None

        owner = PairingOwner(account_id=info["accountId"], open_id=info["openId"])
        paired = PairedUser(
            paired_at=self._clock(),
            paired_by=verifier_id,
            paired_by_name=verifier_name,
            paired_by_channel=channel,
        )

        def _pair(users: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
            users[user_key(owner.account_id, owner.open_id)] = paired.to_dict()
            return users

        self._users.update(_pair)

        codes = dict(codes)
        del codes[code]
        self._codes.write(codes)

        logger.info(
            f"[wemp:{owner.account_id}] {owner.open_id} paired by {verifier_id}"
            f"{f' via {channel}' if channel else ''}"
        )
        return owner

    # ------------------------------------------------------------------
    # Paired users
    # ------------------------------------------------------------------

    def is_paired(self, account_id: str, open_id: str) -> bool:
        return user_key(account_id, open_id) in self._users.read()

    def get_paired_user(self, account_id: str, open_id: str) -> PairedUser | None:
        data = self._users.read().get(user_key(account_id, open_id))
        return PairedUser.from_dict(data) if data else None

    def unpair(self, account_id: str, open_id: str) -> bool:
        key = user_key(account_id, open_id)
        users = self._users.read()
        if key not in users:
            return False
        users = dict(users)
        del users[key]
        self._users.write(users)
        logger.info(f"[wemp:{account_id}] {open_id} unpaired")
        return True

    def list_paired_users(self) -> dict[str, PairedUser]:
        return {key: PairedUser.from_dict(v) for key, v in self._users.read().items()}

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def get_pairing_api_token(self, account_id: str) -> str | None:
        return self.tokens.get_api_token(account_id)

    def set_pairing_api_token(self, account_id: str, token: str | None) -> None:
        self.tokens.set_api_token(account_id, token)

    def clear_cache(self) -> None:
        self._users.clear_cache()
        self._codes.clear_cache()


_registry: PairingRegistry | None = None


def get_pairing_registry() -> PairingRegistry:
    """Return the process-wide :class:`PairingRegistry`.

    Tokens come from ``WEMP_PAIRING_API_TOKEN`` plus each configured
    account's ``pairingApiToken``.
    """
    global _registry
    if _registry is None:
        from wemp.config.loader import load_config
        from wemp.settings import get_settings

        settings = get_settings()
        tokens = PairingTokens(default=settings.pairing_api_token.strip() or None)
        for account_id, account in load_config(settings.config_path).accounts.items():
            tokens.set_api_token(account_id, account.pairing_api_token)
        _registry = PairingRegistry(settings.data_dir, tokens=tokens)
    return _registry
