"""Actors — the user (or client) a request is made on behalf of.

Developers bring their own user model: ORM row, dataclass, anything. The
framework only looks at a few attributes, declared here as structural
protocols. Role checks read either a single ``role`` field or a ``roles``
collection (the many-to-many case: a user belongs to several roles).
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class User(Protocol):
    """Minimal user protocol.

    Any object with ``id`` and ``is_authenticated`` satisfies this.
    """

    @property
    def id(self) -> str: ...

    @property
    def is_authenticated(self) -> bool: ...


@runtime_checkable
class UserWithRole(User, Protocol):
    """A user carrying a single role name (``user.role == "admin"``)."""

    @property
    def role(self) -> str | None: ...


@runtime_checkable
class UserWithRoles(User, Protocol):
    """A user belonging to several roles.

    Items may be role names or role objects exposing ``name``.
    """

    @property
    def roles(self) -> Iterable[Any]: ...


@dataclass(frozen=True, slots=True)
class AnonymousUser:
    """Sentinel for unauthenticated requests.

    ``request.user`` and ``get_user()`` return this instead of ``None``.
    """

    id: str = ""
    is_authenticated: bool = False
    role: str | None = None


ANONYMOUS: AnonymousUser = AnonymousUser()


def is_authenticated(user: Any) -> bool:
    """True when *user* is present and reports itself authenticated."""
    return user is not None and bool(getattr(user, "is_authenticated", False))


def role_names(user: Any) -> frozenset[str]:
    """Collect the role names carried directly on *user*.

    ``roles`` wins over ``role`` when both are present. Empty names are
    dropped, so a user whose role is ``""`` has no role at all.
    """
    roles = getattr(user, "roles", None)
    if roles is not None and not isinstance(roles, str):
        return _normalize(roles)

    role = getattr(user, "role", None)
    if role:
        return frozenset({str(role)})
    return frozenset()


def _normalize(items: Iterable[Any]) -> frozenset[str]:
    names: set[str] = set()
    for item in items:
        name = item if isinstance(item, str) else getattr(item, "name", None)
        if name:
            names.add(str(name))
    return frozenset(names)


def normalize_roles(items: Iterable[Any] | str | None) -> frozenset[str]:
    """Normalize a resolver result (name, names, or role objects) to names."""
    if items is None:
        return frozenset()
    if isinstance(items, str):
        return frozenset({items}) if items else frozenset()
    return _normalize(items)
