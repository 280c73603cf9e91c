"""Persistence of the OIDC token set used against the Onecta cloud."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import DaikinAuthError

logger = logging.getLogger("daikin_exporter.onecta.tokens")

# Refresh slightly before the upstream expiry to avoid racing it mid-request.
EXPIRY_MARGIN_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: Optional[float]
    token_type: str = "Bearer"

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token is not None:
            payload["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            payload["expires_at"] = int(self.expires_at)
        return payload

    @classmethod
    def from_payload(cls, payload: Any, *, now: Optional[float] = None) -> "TokenSet":
        if not isinstance(payload, dict):
            raise DaikinAuthError("Token set must be a JSON object")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise DaikinAuthError("Token set is missing access_token")

        refresh_token = payload.get("refresh_token")
        if not isinstance(refresh_token, str) or not refresh_token.strip():
            refresh_token = None

        expires_at = payload.get("expires_at")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            expires_at = None
            # Token endpoint responses carry a relative lifetime instead.
            expires_in = payload.get("expires_in")
            if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool):
                issued = time.time() if now is None else now
                expires_at = issued + float(expires_in)

        token_type = payload.get("token_type")
        return cls(
            access_token=access_token.strip(),
            refresh_token=refresh_token,
            expires_at=float(expires_at) if expires_at is not None else None,
            token_type=token_type if isinstance(token_type, str) and token_type else "Bearer",
        )


class TokenStore:
    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> TokenSet:
        if not self._path.exists():
            raise DaikinAuthError(
                f"No Onecta token set at {self._path}; complete the OIDC authorization once to provision it"
            )
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise DaikinAuthError(f"Unable to read Onecta token set at {self._path}") from exc
        return TokenSet.from_payload(raw)

    def save(self, tokens: TokenSet) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(tokens.to_payload(), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to persist refreshed token set to %s: %s", self._path, exc)


__all__ = ["EXPIRY_MARGIN_SECONDS", "TokenSet", "TokenStore"]
