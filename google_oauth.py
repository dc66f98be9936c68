"""
Google sign-in with the OAuth 2.0 authorization code flow.

Only the pieces this app needs: build the consent URL, trade the returned code
for an access token, and read the profile id and names.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
SCOPE = "profile"


class OAuthError(Exception):
    """The Google handshake failed; the user has to start over."""


@dataclass
class GoogleProfile:
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class GoogleOAuthClient:
    def __init__(self, client_id, client_secret, callback_url, timeout=10):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, state: str) -> str:
        query = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "scope": SCOPE,
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(query)}"

    def fetch_profile(self, code: str) -> GoogleProfile:
        access_token = self._exchange_code(code)
        data = self._get_json(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        profile_id = data.get("sub") or data.get("id")
        if not profile_id:
            raise OAuthError("Google profile has no id")
        return GoogleProfile(
            id=str(profile_id),
            first_name=data.get("given_name"),
            last_name=data.get("family_name"),
        )

    def _exchange_code(self, code: str) -> str:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.callback_url,
            "grant_type": "authorization_code",
        }
        try:
            r = requests.post(TOKEN_URL, data=payload, headers={"Accept": "application/json"}, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise OAuthError(f"OAuth token exchange failed: {e}") from e
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise OAuthError("OAuth access token missing")
        return access_token

    def _get_json(self, url: str, headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            r = requests.get(url, headers=headers, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise OAuthError(f"Google profile lookup failed: {e}") from e
        if not isinstance(data, dict):
            raise OAuthError("Invalid Google profile payload")
        return data
