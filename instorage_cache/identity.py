"""
Identity resolution for decomposed objects.

An object with a stable identity (by default: a type name plus an id) is
stored under "{typename}:{id}" so every query that returns it shares one
record. An object without one gets a generated key scoped to the path it was
found at, marked with GENERATED_KEY_PREFIX.

The identity rule is a strategy object with a single ``identify`` method. Plain
callables are accepted and wrapped, so deployments can pass a function as
they would an ``identityFn`` option.

Invariants:
    - resolve() is a pure function of its inputs and the strategy
    - Stable keys and generated keys never collide
    - Identical (typename, id) always yields the identical key
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol, Sequence, runtime_checkable

from .errors import ConfigurationError, InvalidKeyError
from .records import (
    GENERATED_KEY_PREFIX,
    ROOT_KEY,
    TYPENAME_FIELD,
    Reference,
    generated_key,
)

IdentityFn = Callable[[Mapping[str, Any]], Optional[str]]


@runtime_checkable
class IdentityStrategy(Protocol):
    """Strategy computing a stable key for an object, or None if it has none."""

    def identify(self, obj: Mapping[str, Any]) -> Optional[str]:
        ...


class TypenameIdIdentity:
    """Default identity rule: ``{typename}:{id}`` when both are present.

    Args:
        id_fields: Candidate identifying fields, tried in order
    """

    def __init__(self, id_fields: Sequence[str] = ("id",)) -> None:
        if not id_fields:
            raise ConfigurationError("id_fields must name at least one field", option="id_fields")
        self.id_fields = tuple(id_fields)

    def identify(self, obj: Mapping[str, Any]) -> Optional[str]:
        typename = obj.get(TYPENAME_FIELD)
        if not typename:
            return None
        for name in self.id_fields:
            value = obj.get(name)
            if value is not None and value != "":
                return f"{typename}:{value}"
        return None

    def __repr__(self) -> str:
        return f"TypenameIdIdentity(id_fields={self.id_fields!r})"


class CallableIdentity:
    """Adapts a plain ``(obj) -> key | None`` function to IdentityStrategy."""

    def __init__(self, fn: IdentityFn) -> None:
        self.fn = fn

    def identify(self, obj: Mapping[str, Any]) -> Optional[str]:
        return self.fn(obj)

    def __repr__(self) -> str:
        return f"CallableIdentity({getattr(self.fn, '__name__', self.fn)!r})"


def as_identity_strategy(identity: Any) -> IdentityStrategy:
    """Coerce the user-supplied identity option into a strategy.

    Args:
        identity: None, an IdentityStrategy, or a callable

    Raises:
        ConfigurationError: If identity is none of the accepted forms
    """
    if identity is None:
        return TypenameIdIdentity()
    if isinstance(identity, IdentityStrategy):
        return identity
    if callable(identity):
        return CallableIdentity(identity)
    raise ConfigurationError(
        f"identity must be an IdentityStrategy or a callable, got {type(identity).__name__}",
        option="identity",
    )


class IdentityResolver:
    """Computes the entity key a decomposed object is stored under.

    Example:
        >>> resolver = IdentityResolver(TypenameIdIdentity())
        >>> resolver.resolve({"__typename": "User", "id": 1}, "ROOT_QUERY", "me")
        Reference(key='User:1', generated=False, typename='User')
        >>> resolver.resolve({"__typename": "Meta"}, "ROOT_QUERY", "meta")
        Reference(key='$ROOT_QUERY.meta', generated=True, typename='Meta')
    """

    def __init__(self, strategy: IdentityStrategy, root_key: str = ROOT_KEY) -> None:
        self.strategy = strategy
        self.root_key = root_key

    def resolve(
        self,
        obj: Mapping[str, Any],
        parent_key: str,
        field_path: str,
    ) -> Reference:
        """Resolve the key for ``obj`` found at ``parent_key``/``field_path``.

        Raises:
            InvalidKeyError: If the strategy returns a key in a reserved namespace
        """
        typename = obj.get(TYPENAME_FIELD)
        if typename is not None and not isinstance(typename, str):
            typename = str(typename)

        stable = self.strategy.identify(obj)
        if stable is None:
            return Reference(
                key=generated_key(parent_key, field_path),
                generated=True,
                typename=typename,
            )

        self._check_stable_key(stable)
        return Reference(key=stable, generated=False, typename=typename)

    def _check_stable_key(self, key: Any) -> None:
        if not isinstance(key, str) or not key:
            raise InvalidKeyError(key, "stable keys must be non-empty strings")
        if key.startswith(GENERATED_KEY_PREFIX):
            raise InvalidKeyError(
                key, f"stable keys may not start with the generated marker '{GENERATED_KEY_PREFIX}'"
            )
        if key == self.root_key:
            raise InvalidKeyError(key, "stable keys may not equal the root key")
