"""Resolve generic data-type requests into native HealthKit identifiers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence, Union

from healthbridge.domains.health.domain_logic.errors import UnknownDataTypeError
from healthbridge.domains.health.domain_logic.type_registry import (
    TypeFamily,
    TypeRegistry,
)

if TYPE_CHECKING:
    from healthbridge.domains.health.connectors import NativeHealthStore

logger = logging.getLogger(__name__)

# A request item is a generic name (read and write) or {"read": [...], "write": [...]}
TypeRequestItem = Union[str, Mapping[str, Sequence[str]]]


def dedupe(items: Iterable[str]) -> list[str]:
    """Remove duplicates keeping the first occurrence."""
    return list(dict.fromkeys(items))


def resolve_native_types(names: Sequence[str], registry: TypeRegistry) -> list[str]:
    """Expand generic names into the native identifiers they need.

    Characteristic types (gender, date_of_birth) are skipped: they are
    readable without authorization and never writable.

    Raises:
        UnknownDataTypeError: On the first unrecognized name.
    """
    native: list[str] = []
    for name in names:
        descriptor = registry.lookup(name)
        if descriptor is None:
            raise UnknownDataTypeError(name)
        if descriptor.family is TypeFamily.UNSUPPORTED:
            continue
        if descriptor.family is TypeFamily.COMPOSITE:
            native.extend(
                member.native_type
                for member in registry.members(descriptor.member_prefix or "")
                if member.native_type
            )
        elif descriptor.family is TypeFamily.CORRELATION:
            native.extend(descriptor.components)
        else:
            if descriptor.native_type:
                native.append(descriptor.native_type)
            if descriptor.counterpart:
                native.append(descriptor.counterpart)
    return native


def resolve_read_write(
    request: Sequence[TypeRequestItem], registry: TypeRegistry
) -> tuple[list[str], list[str]]:
    """Split a type request into deduplicated (read_types, write_types).

    Raises:
        UnknownDataTypeError: If any name is unknown. Nothing partial is returned.
    """
    read_types: list[str] = []
    write_types: list[str] = []
    for item in request:
        if isinstance(item, str):
            resolved = resolve_native_types([item], registry)
            read_types.extend(resolved)
            write_types.extend(resolved)
            continue
        for key, target in (("read", read_types), ("write", write_types)):
            names = item.get(key)
            if not names:
                continue
            try:
                target.extend(resolve_native_types(names, registry))
            except UnknownDataTypeError as exc:
                raise UnknownDataTypeError(
                    exc.data_type, f"unknown {key} data type - {exc.data_type}"
                ) from None
    return dedupe(read_types), dedupe(write_types)


class TypeResolver:
    """Authorization checks on top of read/write resolution."""

    def __init__(self, store: NativeHealthStore, registry: TypeRegistry) -> None:
        self._store = store
        self._registry = registry

    def resolve(self, request: Sequence[TypeRequestItem]) -> tuple[list[str], list[str]]:
        return resolve_read_write(_as_request(request), self._registry)

    async def request_authorization(self, request: Sequence[TypeRequestItem]) -> None:
        read_types, write_types = self.resolve(request)
        logger.debug(
            "Requesting authorization: %d read, %d write types",
            len(read_types), len(write_types),
        )
        await self._store.request_authorization(read_types, write_types)

    async def is_authorized(self, request: Sequence[TypeRequestItem]) -> bool:
        """True only if every resolved identifier is authorized.

        Identifiers are checked one at a time; the first one that is not
        authorized ends the check.
        """
        read_types, write_types = self.resolve(request)
        for native_type in dedupe(read_types + write_types):
            status = await self._store.check_auth_status(native_type)
            if status != "authorized":
                logger.debug("%s not authorized (%s)", native_type, status)
                return False
        return True


def _as_request(value: Any) -> list[TypeRequestItem]:
    """Accept a single name or item as well as a list."""
    if isinstance(value, (str, Mapping)):
        return [value]
    return list(value)
