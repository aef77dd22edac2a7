import typing
from dataclasses import dataclass, field
from typing import Optional

import httpx


class DigiStorageTokenCredentials(httpx.Auth):
    """Credentials of a Digi Storage session. Every request sent with these
    credentials carries an `Authorization: Token <token>` header."""

    def __init__(
        self, token: str, email: str = None, displayname: str = None
    ) -> None:
        if not token:
            raise ValueError("A token is required")
        self._token = token
        self.email = email
        self.displayname = displayname

    @property
    def email(self) -> str:
        """The email address associated with this token."""
        return self._email

    @email.setter
    def email(self, email: str) -> None:
        self._email = email

    @property
    def displayname(self) -> str:
        """The name of the user associated with this token."""
        return self._displayname

    @displayname.setter
    def displayname(self, displayname: str) -> None:
        self._displayname = displayname

    @property
    def secret(self) -> str:
        """The session token."""
        return self._token

    def auth_flow(
        self, request: httpx.Request
    ) -> typing.Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Token {self.secret}"
        yield request

    def __repr__(self):
        # the token is never printed
        return (
            f"DigiStorageTokenCredentials("
            f"email='{self.email}', "
            f"displayname='{self.displayname}')"
        )


@dataclass
class UserLoginArgs:
    """
    Data class representing user login arguments for authentication.

    Attributes:
        email (Optional[str]): The email address of the Digi Storage account.
        password (Optional[str]): The password exchanged for a session token.
                                  Hidden from debug logs for security.
        auth_token (Optional[str]): A session token obtained earlier.
                                    Hidden from debug logs for security.
    """

    email: Optional[str] = field(default=None)
    password: Optional[str] = field(default=None, repr=False)
    auth_token: Optional[str] = field(default=None, repr=False)
