# Overview: Strong identifier types for products and customers.

"""
Identity types

Product ids and barcodes are both "strings of digits" at the edges of the
system, and conflating them is the classic mis-scan defect. Identifiers are
therefore distinct types:

- ``ProductId.parse`` / ``CustomerId.parse`` is the ONLY place raw values
  (JSON bodies, query args, store rows) become identities. It accepts ints
  and plain digit strings and rejects everything else.
- ``require_product_id`` / ``require_customer_id`` are the strict form used
  inside the domain: an already-parsed id or a real int passes, strings
  never do (no silent coercion of a scanned code into an id).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidIdentity

_DIGITS = re.compile(r"^[0-9]+$")

# Largest value a signed 64-bit primary key column can hold
MAX_IDENTITY = 2**63 - 1


def _check_int(kind: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidIdentity(f"{kind} id must be an integer, got {value!r}", value=value)
    if value <= 0 or value > MAX_IDENTITY:
        raise InvalidIdentity(f"{kind} id must be a positive integer, got {value!r}", value=value)
    return value


@dataclass(frozen=True, order=True)
class _Identity:
    value: int

    kind = "entity"

    def __post_init__(self):
        _check_int(self.kind, self.value)

    @classmethod
    def parse(cls, raw):
        """Boundary parse: int or digit-only string -> identity."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, _Identity):
            raise InvalidIdentity(
                f"expected a {cls.kind} id, got a {raw.kind} id", value=raw
            )
        if isinstance(raw, str):
            stripped = raw.strip()
            if not _DIGITS.match(stripped):
                raise InvalidIdentity(
                    f'{cls.kind} id "{raw}" is not numeric; it looks like a code, not an id',
                    value=raw,
                )
            return cls(int(stripped))
        return cls(_check_int(cls.kind, raw))

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, order=True)
class ProductId(_Identity):
    kind = "product"


@dataclass(frozen=True, order=True)
class CustomerId(_Identity):
    kind = "customer"


def require_product_id(value) -> ProductId:
    """Strict domain check: ProductId or int only."""
    if isinstance(value, ProductId):
        return value
    if isinstance(value, str):
        raise InvalidIdentity(
            f'product id "{value}" is a string; refusing to treat it as an id',
            value=value,
        )
    return ProductId(_check_int("product", value))


def require_customer_id(value) -> CustomerId:
    if isinstance(value, CustomerId):
        return value
    if isinstance(value, str):
        raise InvalidIdentity(
            f'customer id "{value}" is a string; refusing to treat it as an id',
            value=value,
        )
    return CustomerId(_check_int("customer", value))


def is_valid_product_id(value) -> bool:
    try:
        require_product_id(value)
    except InvalidIdentity:
        return False
    return True
