# Copyright 2025 Accelerated Cloud Storage Corporation. All Rights Reserved.
"""
Credentials providers.

A provider is injected into the client session when a filesystem is
built, so code that needs the raw keys (private URLs) asks the provider
instead of digging into a concrete client object.
"""

import os
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Credentials:
    access_key_id: str
    secret_access_key: str
    session_token: Optional[str] = None


class CredentialsProvider(Protocol):
    def get_credentials(self) -> Optional[Credentials]:
        ...


class StaticCredentialsProvider:
    """Provider returning a fixed key pair."""

    def __init__(self, access_key_id: str, secret_access_key: str, session_token: Optional[str] = None):
        self._credentials = Credentials(access_key_id, secret_access_key, session_token)

    def get_credentials(self) -> Optional[Credentials]:
        return self._credentials

    def __repr__(self):
        return f"StaticCredentialsProvider(access_key_id={self._credentials.access_key_id!r})"


class EnvironmentCredentialsProvider:
    """Provider reading the standard AWS_* environment variables."""

    def get_credentials(self) -> Optional[Credentials]:
        access_key = os.environ.get("AWS_ACCESS_KEY_ID")
        secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY")
        if not access_key or not secret_key:
            return None
        return Credentials(access_key, secret_key, os.environ.get("AWS_SESSION_TOKEN"))
