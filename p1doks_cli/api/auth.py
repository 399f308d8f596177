"""
Handles the password and refresh-token exchanges with the P1Doks user pool
on AWS Cognito.
"""

import logging
from typing import Any

import aiohttp

from p1doks_cli.exceptions import AuthenticationError, IdentityProviderError

from .session import CredentialTriple

log = logging.getLogger(__name__)


class CognitoIdentityProvider:
    """
    Talks to the Cognito Identity Provider JSON API with the InitiateAuth
    action.
    """

    TARGET = "AWSCognitoIdentityProviderService.InitiateAuth"

    def __init__(
        self,
        region: str,
        client_id: str,
        endpoint: str | None = None,
        timeout: float = 30.0,
    ):
        """
        Initializes the provider.

        Args:
            region: The AWS region hosting the user pool.
            client_id: The public app client id of the user pool.
            endpoint: Overrides the regional Cognito endpoint.
            timeout: Total timeout in seconds for each exchange.
        """
        self.client_id = client_id
        self.endpoint = endpoint or f"https://cognito-idp.{region}.amazonaws.com/"
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=15)

    async def authenticate(self, username: str, password: str) -> CredentialTriple:
        """
        Signs in with a username and password.

        Returns:
            The issued credential triple.
        """
        log.info(f"Authenticating as: {username}")
        result = await self._initiate_auth(
            "USER_PASSWORD_AUTH", {"USERNAME": username, "PASSWORD": password}
        )
        return self._to_credentials(result)

    async def refresh(self, username: str, refresh_token: str) -> CredentialTriple:
        """
        Exchanges a refresh token for new credentials.

        Cognito only returns a refresh token when rotation is enabled on the
        app client; otherwise the submitted one stays valid and is kept.
        """
        log.debug(f"Refreshing credentials for: {username}")
        result = await self._initiate_auth(
            "REFRESH_TOKEN_AUTH",
            {"USERNAME": username, "REFRESH_TOKEN": refresh_token},
        )
        return self._to_credentials(result, fallback_refresh_token=refresh_token)

    async def _initiate_auth(
        self, flow: str, parameters: dict[str, str]
    ) -> dict[str, Any]:
        payload = {
            "AuthFlow": flow,
            "ClientId": self.client_id,
            "AuthParameters": parameters,
        }
        headers = {
            "Content-Type": "application/x-amz-json-1.1",
            "X-Amz-Target": self.TARGET,
        }

        async with (
            aiohttp.ClientSession(timeout=self._timeout) as session,
            session.post(self.endpoint, json=payload, headers=headers) as r,
        ):
            body = await r.json(content_type=None)
            if r.status >= 400:
                raise self._to_error(r.status, body)

        if challenge := body.get("ChallengeName"):
            raise AuthenticationError(
                f"Sign-in requires an unsupported challenge: {challenge}"
            )
        return body.get("AuthenticationResult") or {}

    @staticmethod
    def _to_error(status: int, body: Any) -> IdentityProviderError:
        """Builds an error from a Cognito error body ('__type', 'message')."""
        if not isinstance(body, dict):
            body = {}
        # '__type' may be namespaced, e.g. 'com.amazon...#NotAuthorizedException'
        error_type = str(body.get("__type", "")).rsplit("#", 1)[-1] or None
        message = body.get("message") or body.get("Message") or f"HTTP {status}"
        return IdentityProviderError(
            f"Authentication failed: {message}", error_type=error_type, status=status
        )

    @staticmethod
    def _to_credentials(
        result: dict[str, Any], fallback_refresh_token: str | None = None
    ) -> CredentialTriple:
        try:
            return CredentialTriple(
                access_token=result.get("AccessToken", ""),
                id_token=result.get("IdToken", ""),
                refresh_token=result.get("RefreshToken") or fallback_refresh_token,
            )
        except ValueError as e:
            raise AuthenticationError(
                f"Authentication failed: incomplete response ({e})"
            ) from e
