"""Credential request models.

An ``AuthConfig`` describes the credential a tool needs. The end user
answers a credential request by returning the same config with
``exchanged_credential`` filled in.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """Credential requirements for a tool.

    Attributes:
        auth_scheme: Scheme identifier (e.g. "oauth2", "api_key", "bearer").
        raw_credential: Client-side material needed to obtain the credential
            (client id, scopes, auth url, ...).
        exchanged_credential: The credential supplied by the end user.
        credential_key: Stable key identifying this credential. Derived from
            the scheme and raw credential when omitted.
    """

    auth_scheme: str
    raw_credential: dict[str, Any] = Field(default_factory=dict)
    exchanged_credential: Optional[dict[str, Any]] = None
    credential_key: Optional[str] = None

    def get_credential_key(self) -> str:
        if self.credential_key:
            return self.credential_key
        digest = hashlib.sha256(
            json.dumps(
                {"scheme": self.auth_scheme, "raw": self.raw_credential},
                sort_keys=True,
                default=str,
            ).encode()
        ).hexdigest()
        return f"strand_{self.auth_scheme}_{digest[:16]}"
