"""Provenance rules: which source kind each grant mechanism requires."""

from __future__ import annotations

from membership_api.core.errors import InvalidProvenanceError
from membership_api.models import GrantedVia, Initiation, Product, SourceKind, SourceRef

# ``None`` means the mechanism must not carry a source.
REQUIRED_SOURCE_KIND: dict[GrantedVia, SourceKind | None] = {
    GrantedVia.PRODUCT_PURCHASE: SourceKind.PRODUCT,
    GrantedVia.INITIATION_COMPLETED: SourceKind.INITIATION,
    GrantedVia.MANUAL: None,
}


def coerce_granted_via(value: GrantedVia | str) -> GrantedVia:
    try:
        return GrantedVia(value)
    except ValueError as exc:
        raise InvalidProvenanceError(f"Unknown grant mechanism '{value}'") from exc


def validate_provenance(granted_via: GrantedVia | str, source: SourceRef | None) -> GrantedVia:
    """Return the mechanism when ``source`` matches it, else raise."""

    mechanism = coerce_granted_via(granted_via)
    expected = REQUIRED_SOURCE_KIND[mechanism]
    actual = source.kind if source is not None else None
    if expected != actual:
        wanted = expected.value if expected is not None else "no source"
        got = actual.value if actual is not None else "no source"
        raise InvalidProvenanceError(
            f"granted_via={mechanism.value} requires {wanted}, got {got}"
        )
    return mechanism


def product_source(product: Product) -> SourceRef:
    return SourceRef(SourceKind.PRODUCT, product.id)


def initiation_source(initiation: Initiation) -> SourceRef:
    return SourceRef(SourceKind.INITIATION, initiation.id)


__all__ = [
    "REQUIRED_SOURCE_KIND",
    "coerce_granted_via",
    "initiation_source",
    "product_source",
    "validate_provenance",
]
