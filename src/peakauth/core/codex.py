"""
Shared domain types for the peakauth package.

This module contains the value types that flow between the login flow,
the refresh coordinator and session storage. Every type here is immutable;
a refreshed token or session is a new value, never an in-place update.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Credentials:
    """Username and password supplied by the caller. The password never appears in repr."""
    username: str
    password: str = field(repr=False)

    def __post_init__(self):
        if not isinstance(self.username, str) or not self.username.strip():
            raise ValueError("Username is required")
        if not isinstance(self.password, str) or not self.password:
            raise ValueError("Password is required")


@dataclass(frozen=True)
class AuthToken:
    """Access token issued by the platform."""
    access_token: str = field(repr=False)
    token_type: str
    expires_at: datetime
    refresh_token: Optional[str] = field(default=None, repr=False)
    scope: Optional[str] = None

    @classmethod
    def create(
        cls,
        access_token: str,
        expires_at: datetime,
        token_type: str = "Bearer",
        refresh_token: Optional[str] = None,
        scope: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "AuthToken":
        """
        Create a new token, enforcing that it has not already expired.

        Args:
            access_token: The bearer credential
            expires_at: Absolute expiry time
            token_type: Authorization scheme, "Bearer" by default
            refresh_token: Optional refresh credential
            scope: Optional scope string
            now: Reference time, defaults to the current UTC time

        Returns:
            A new AuthToken

        Raises:
            ValueError: If the access token is empty or the expiry is not in the future
        """
        if not access_token:
            raise ValueError("Access token is required")
        expires_at = _parse_datetime(expires_at)
        if expires_at <= (now or utcnow()):
            raise ValueError(f"Token expiry must be in the future, got {expires_at.isoformat()}")
        return cls(
            access_token=access_token,
            token_type=token_type or "Bearer",
            expires_at=expires_at,
            refresh_token=refresh_token or None,
            scope=scope,
        )

    @property
    def is_refreshable(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def needs_refresh(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        """True when the token expires within ``window``."""
        return self.expires_at <= (now or utcnow()) + window

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        return max(self.expires_at - (now or utcnow()), timedelta(0))

    def authorization_value(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
            "refresh_token": self.refresh_token,
            "scope": self.scope,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthToken":
        # Stored tokens may already be expired; only creation enforces the future expiry.
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            expires_at=_parse_datetime(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
        )


def token_from_payload(
    token_data: Dict[str, Any],
    default_lifetime: timedelta,
    previous: Optional[AuthToken] = None,
    now: Optional[datetime] = None,
) -> Optional[AuthToken]:
    """
    Build an AuthToken from the platform's ``token`` object.

    The expiry comes from ``expires`` (ISO timestamp), then ``expires_in``
    (seconds), then ``default_lifetime``. A missing ``refresh_token`` keeps the
    one from ``previous``.

    Args:
        token_data: The ``token`` object of a token or refresh response
        default_lifetime: Lifetime assumed when the payload carries no expiry
        previous: The token being replaced, if any
        now: Reference time, defaults to the current UTC time

    Returns:
        The new token, or None when the payload has no access token

    Raises:
        ValueError: If the payload describes an already expired token
    """
    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        return None

    now = now or utcnow()
    expires_at = None
    if token_data.get("expires"):
        try:
            expires_at = _parse_datetime(token_data["expires"])
        except ValueError:
            expires_at = None
    if expires_at is None and isinstance(token_data.get("expires_in"), (int, float)):
        expires_at = now + timedelta(seconds=token_data["expires_in"])
    if expires_at is None:
        expires_at = now + default_lifetime

    return AuthToken.create(
        access_token=token_data["access_token"],
        expires_at=expires_at,
        token_type=token_data.get("token_type") or (previous.token_type if previous else "Bearer"),
        refresh_token=token_data.get("refresh_token") or (previous.refresh_token if previous else None),
        scope=token_data.get("scope") or (previous.scope if previous else None),
        now=now,
    )


@dataclass(frozen=True)
class User:
    """Authenticated platform user."""
    id: str
    display_name: str
    avatar: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "avatar": self.avatar,
            "preferences": self.preferences,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            display_name=data.get("display_name") or str(data["id"]),
            avatar=data.get("avatar"),
            preferences=data.get("preferences"),
        )


@dataclass(frozen=True)
class Session:
    """The persisted pairing of a token and the user it was issued to."""
    token: AuthToken
    user: User

    def with_token(self, token: AuthToken) -> "Session":
        return replace(self, token=token)

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token.to_dict(), "user": self.user.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(token=AuthToken.from_dict(data["token"]), user=User.from_dict(data["user"]))


@dataclass
class InterceptedSignal:
    """Per-attempt accumulator of data recovered from intercepted traffic."""
    token: Optional[AuthToken] = None
    user_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.token is not None and self.user_id is not None

    @property
    def has_progress(self) -> bool:
        return self.token is not None or self.user_id is not None

    def missing(self) -> list:
        missing = []
        if self.token is None:
            missing.append("token")
        if self.user_id is None:
            missing.append("user id")
        return missing


class TrackerState(Enum):
    """States of the network completion tracker."""
    LISTENING = "listening"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_settled(self) -> bool:
        return self is not TrackerState.LISTENING


@dataclass(frozen=True)
class SelectorCandidate:
    """One entry of a priority-ordered selector list."""
    selector: str
    description: str = ""
    requires_keywords: bool = True
