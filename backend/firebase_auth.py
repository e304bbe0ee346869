"""
Firebase Authentication client over the Identity Toolkit REST API
"""

import asyncio
import aiohttp
from typing import Dict, Any, Optional, Tuple

from core.logging_config import get_logger
from .credentials import Credentials
from .exceptions import AuthenticationError, BackendConnectionError, BackendError


class FirebaseAuthClient:
    """Email/password sign-in, sign-up, password reset and token refresh"""

    def __init__(self,
                 api_key: str,
                 auth_endpoint: str = "https://identitytoolkit.googleapis.com/v1",
                 token_endpoint: str = "https://securetoken.googleapis.com/v1/token",
                 timeout: float = 10.0):
        self.logger = get_logger(__name__)
        self.api_key = api_key
        self.auth_endpoint = auth_endpoint.rstrip("/")
        self.token_endpoint = token_endpoint
        self.timeout = timeout

    async def sign_in(self, email: str, password: str) -> Credentials:
        """
        Sign in with email and password

        Raises:
            AuthenticationError: Wrong email/password or disabled account
            BackendConnectionError: Backend unreachable
        """
        data = await self._call("accounts:signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True
        })
        return self._credentials_from(data)

    async def sign_up(self, email: str, password: str) -> Credentials:
        """Create a new email/password account and return its credentials"""
        data = await self._call("accounts:signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True
        })
        return self._credentials_from(data)

    async def update_display_name(self, id_token: str, display_name: str) -> None:
        await self._call("accounts:update", {
            "idToken": id_token,
            "displayName": display_name,
            "returnSecureToken": False
        })

    async def send_password_reset(self, email: str) -> None:
        await self._call("accounts:sendOobCode", {
            "requestType": "PASSWORD_RESET",
            "email": email
        })

    async def refresh_id_token(self, credentials: Credentials) -> Credentials:
        """Exchange the refresh token for a new id token"""
        status, data = await self._post(self.token_endpoint, {
            "grant_type": "refresh_token",
            "refresh_token": credentials.refresh_token
        })
        self._raise_for_error(status, data, "token refresh")

        return Credentials(
            user_id=data.get("user_id", credentials.user_id),
            email=credentials.email,
            id_token=data["id_token"],
            refresh_token=data.get("refresh_token", credentials.refresh_token),
            display_name=credentials.display_name,
        )

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.auth_endpoint}/{method}"
        status, data = await self._post(url, payload)
        self._raise_for_error(status, data, method)
        return data

    async def _post(self, url: str, payload: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        """Send one JSON POST with the API key; returns (status, decoded body)"""
        try:
            timeout_config = aiohttp.ClientTimeout(total=self.timeout)

            async with aiohttp.ClientSession(timeout=timeout_config) as session:
                async with session.post(
                    url,
                    params={"key": self.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"}
                ) as response:
                    data = await response.json(content_type=None)
                    return response.status, data or {}

        except aiohttp.ClientConnectorError as e:
            raise BackendConnectionError(f"Cannot reach Firebase Auth: {e}")

        except asyncio.TimeoutError:
            raise BackendConnectionError(f"Firebase Auth timed out after {self.timeout}s")

        except aiohttp.ClientError as e:
            raise BackendConnectionError(f"Firebase Auth request failed: {e}")

    @staticmethod
    def _raise_for_error(status: int, data: Dict[str, Any], operation: str) -> None:
        if status == 200:
            return

        error = data.get("error", {}) if isinstance(data, dict) else {}
        if isinstance(error, dict):
            code = error.get("message", f"HTTP_{status}")
        else:
            # Secure token endpoint returns {"error": "invalid_grant", ...}
            code = str(error)

        if status in (400, 401, 403):
            raise AuthenticationError(code, f"{operation} rejected: {code}", details={"status": status})

        raise BackendError(f"{operation} failed with HTTP {status}: {code}", details={"status": status})

    @staticmethod
    def _credentials_from(data: Dict[str, Any]) -> Credentials:
        return Credentials(
            user_id=data["localId"],
            email=data.get("email", ""),
            id_token=data.get("idToken", ""),
            refresh_token=data.get("refreshToken", ""),
            display_name=data.get("displayName", "") or "",
        )
