"""Credential resolution for connectors."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
import logging
import os
from typing import TYPE_CHECKING, ClassVar, Union

from .core.errors import CredentialNotFoundError
from .naming import conventional_env_var

if TYPE_CHECKING:
    from .connectors.base import Connector

LOGGER = logging.getLogger(__name__)


class AuthMode(str, Enum):
    API_KEY = "api-key"
    OAUTH = "oauth"
    TOKEN = "token"
    AWS_SDK = "aws-sdk"
    NONE = "none"
    MIXED = "mixed"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class ApiKeyAuth:
    """A static API key and where it was found (``"explicit"`` or ``"env:NAME"``)."""

    api_key: str
    source: str

    mode: ClassVar[AuthMode] = AuthMode.API_KEY

    def __post_init__(self) -> None:
        if not isinstance(self.api_key, str) or not self.api_key:
            msg = "api_key must be a non-empty string"
            raise ValueError(msg)

    def __repr__(self) -> str:
        return f"ApiKeyAuth(api_key='***', source={self.source!r})"


@dataclass(frozen=True, slots=True)
class OAuthAuth:
    access_token: str
    source: str

    mode: ClassVar[AuthMode] = AuthMode.OAUTH

    def __repr__(self) -> str:
        return f"OAuthAuth(access_token='***', source={self.source!r})"


@dataclass(frozen=True, slots=True)
class TokenAuth:
    token: str
    source: str

    mode: ClassVar[AuthMode] = AuthMode.TOKEN

    def __repr__(self) -> str:
        return f"TokenAuth(token='***', source={self.source!r})"


@dataclass(frozen=True, slots=True)
class AwsSdkAuth:
    """Credentials are picked up by the AWS SDK; no key is carried."""

    profile: str | None = None

    mode: ClassVar[AuthMode] = AuthMode.AWS_SDK


@dataclass(frozen=True, slots=True)
class NoAuth:
    """The connector needs no credentials."""

    mode: ClassVar[AuthMode] = AuthMode.NONE


@dataclass(frozen=True, slots=True)
class MixedAuth:
    api_key: str | None = None
    profile: str | None = None
    source: str | None = None

    mode: ClassVar[AuthMode] = AuthMode.MIXED


@dataclass(frozen=True, slots=True)
class UnknownAuth:
    source: str | None = None

    mode: ClassVar[AuthMode] = AuthMode.UNKNOWN


ResolvedAuth = Union[ApiKeyAuth, OAuthAuth, TokenAuth, AwsSdkAuth, NoAuth, MixedAuth, UnknownAuth]


def candidate_env_vars(provider: str, env_vars: Sequence[str] | None = None) -> tuple[str, ...]:
    """Return the variable names checked for ``provider``, in priority order."""

    names = [name for name in env_vars or () if name]
    conventional = conventional_env_var(provider)
    if conventional not in names:
        names.append(conventional)
    return tuple(names)


def resolve_auth(
    provider: str,
    env_vars: Sequence[str] | None = None,
    explicit_key: str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ApiKeyAuth | None:
    """Resolve an API key for ``provider``.

    Priority: ``explicit_key``, then each name in ``env_vars`` in order, then
    the conventional ``<PROVIDER>_API_KEY`` variable. Empty values are
    treated as unset. Returns ``None`` when nothing is found; this function
    only reads the environment and never raises.
    """

    if explicit_key:
        return ApiKeyAuth(api_key=explicit_key, source="explicit")

    env = os.environ if environ is None else environ
    for name in candidate_env_vars(provider, env_vars):
        value = env.get(name)
        if value:
            LOGGER.debug("resolved credentials for %s from %s", provider, name)
            return ApiKeyAuth(api_key=value, source=f"env:{name}")

    return None


def require_auth(
    connector: Connector,
    explicit_key: str | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ResolvedAuth:
    """Resolve credentials for ``connector`` or raise :class:`CredentialNotFoundError`."""

    if not connector.requires_auth:
        return NoAuth()

    resolved = resolve_auth(connector.provider, connector.env_vars, explicit_key, environ=environ)
    if resolved is None:
        raise CredentialNotFoundError(
            connector.provider, candidate_env_vars(connector.provider, connector.env_vars)
        )
    return resolved
