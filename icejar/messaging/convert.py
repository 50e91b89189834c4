# icejar - Mumble Ice module supervisor
# Copyright (C) 2026 icejar Authors
# SPDX-License-Identifier: Apache-2.0

"""Structural type reconciliation for inter-module messages.

Modules live in separate bundles, so two modules that agree on a message
shape still define *different* classes for it.  :func:`convert` rebuilds a
value as the receiver's declared type:

- records (dataclasses and ``NamedTuple`` classes) are rebuilt positionally,
  each component converted to the receiver's component type
- sequences declared as ``list[T]`` / ``tuple[T, ...]`` are converted element-wise
- enums are mapped by member name
- anything else must already be an instance of the declared type
"""

from __future__ import annotations

import dataclasses
import enum
import types
import typing
from typing import Any

from icejar.exceptions import ConversionError


def is_record_type(cls: Any) -> bool:
    """Whether *cls* is a dataclass or ``NamedTuple`` class."""
    if not isinstance(cls, type):
        return False
    if dataclasses.is_dataclass(cls):
        return True
    return issubclass(cls, tuple) and hasattr(cls, "_fields")


def record_field_names(cls: type) -> list[str]:
    if dataclasses.is_dataclass(cls):
        return [f.name for f in dataclasses.fields(cls) if f.init]
    return list(cls._fields)  # type: ignore[attr-defined]


def record_component_types(cls: type) -> list[Any]:
    """Declared component types of a record class, in field order."""
    try:
        hints = typing.get_type_hints(cls)
    except Exception:
        hints = getattr(cls, "__annotations__", {})
    return [hints.get(name, Any) for name in record_field_names(cls)]


def record_components(obj: Any) -> list[Any]:
    """Component values of a record instance, in field order."""
    return [getattr(obj, name) for name in record_field_names(type(obj))]


def convert(obj: Any, cls: Any) -> Any:
    """Reconcile *obj* with the declared type *cls*.

    Raises:
        ConversionError: *obj* cannot be represented as *cls*.
    """
    if obj is None:
        return None

    if cls is Any or cls is object:
        return obj

    origin = typing.get_origin(cls)

    if origin is typing.Union or origin is types.UnionType:
        for member in typing.get_args(cls):
            if member is type(None):
                continue
            try:
                return convert(obj, member)
            except ConversionError:
                continue
        raise ConversionError(f"{type(obj).__name__} matches no member of {cls}")

    if is_record_type(type(obj)) and is_record_type(cls):
        return _convert_record(obj, cls)

    if origin in (list, tuple) and isinstance(obj, (list, tuple)):
        return _convert_sequence(obj, origin, typing.get_args(cls))

    if (
        isinstance(obj, enum.Enum)
        and isinstance(cls, type)
        and issubclass(cls, enum.Enum)
    ):
        try:
            return cls[obj.name]
        except KeyError:
            raise ConversionError(
                f"{cls.__name__} has no member named {obj.name!r}"
            ) from None

    target = origin if origin is not None else cls
    # bool subclasses int, but a flag is not a number.
    if isinstance(obj, bool) and target in (int, float, complex):
        raise ConversionError(f"bool is not assignable to {cls!r}")
    if isinstance(target, type) and isinstance(obj, target):
        return obj
    raise ConversionError(f"{type(obj).__name__} is not assignable to {cls!r}")


def _convert_record(obj: Any, cls: type) -> Any:
    values = record_components(obj)
    component_types = record_component_types(cls)
    if len(values) != len(component_types):
        raise ConversionError(
            f"{type(obj).__name__} has {len(values)} components, "
            f"{cls.__name__} expects {len(component_types)}"
        )

    args = [convert(value, t) for value, t in zip(values, component_types)]
    try:
        return cls(*args)
    except Exception as e:
        raise ConversionError(f"constructing {cls.__name__} failed: {e}") from e


def _convert_sequence(obj: list | tuple, origin: type, args: tuple) -> Any:
    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            element_types = [args[0]] * len(obj)
        elif args:
            if len(args) != len(obj):
                raise ConversionError(
                    f"expected {len(args)} elements, got {len(obj)}"
                )
            element_types = list(args)
        else:
            element_types = [Any] * len(obj)
        return tuple(convert(v, t) for v, t in zip(obj, element_types))

    element_type = args[0] if args else Any
    return [convert(v, element_type) for v in obj]
