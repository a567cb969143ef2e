"""
Low-level session authentication for the BLOCKv platform.

Responsible for:
- Exchanging user credentials for an access/refresh token pair via /v1/user/login
- Parsing the token pair out of the login payload
- Notifying the platform of a logout

Tokens minted here bypass the refresh flow; the caller hands them to
OAuth2Handler.set_tokens().
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging

from ..const import LOGIN_PATH, LOGOUT_PATH
from ..errors import ApiResponseError, AuthenticationError, BlockvApiError, CallerError
from ..requests import ApiClient

_LOGGER = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class LoginResponse:
    """Parsed response from the BLOCKv login endpoint."""

    access_token: str
    refresh_token: str
    user_id: str | None
    payload: dict

    @classmethod
    def from_json(cls, json: dict) -> "LoginResponse":
        try:
            payload = json["payload"]
            access_token = payload["access_token"]["token"]
            refresh_token = payload["refresh_token"]["token"]
        except (KeyError, TypeError) as exc:
            raise AuthenticationError(f"Unexpected login response: {json}") from exc
        user = payload.get("user") or {}
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            user_id=user.get("id"),
            payload=payload,
        )

    def __str__(self) -> str:
        return f"user_id: {self.user_id}, access_token: <{len(self.access_token)} chars>"


async def login(client: ApiClient, token: str, token_type: str, password: str) -> LoginResponse:
    """
    Log a user in with a user token (email or phone number) and password.

    Raises CallerError for missing credentials and AuthenticationError when
    the platform rejects them.
    """
    if not token or not token_type:
        raise CallerError("A user token and token type are required to log in")
    if not password:
        raise CallerError("A password is required to log in")

    payload = {
        "token": token,
        "token_type": token_type,
        "auth_data": {"password": password},
    }
    try:
        json_response = await client.request("POST", LOGIN_PATH, payload=payload)
    except ApiResponseError as e:
        _LOGGER.error("Error while logging in: %s", e)
        raise AuthenticationError(str(e)) from e

    login_response = LoginResponse.from_json(json_response)
    _LOGGER.debug("Logged in: %s", login_response)
    return login_response


async def logout(client: ApiClient) -> bool:
    """
    Tell the platform the current session has ended.

    Best effort: failures are logged and reported as False, the caller
    clears local credentials either way.
    """
    try:
        await client.request("POST", LOGOUT_PATH)
        return True
    except (BlockvApiError, asyncio.TimeoutError, ValueError) as e:
        _LOGGER.warning("Error while logging out: %s", e)
        return False
