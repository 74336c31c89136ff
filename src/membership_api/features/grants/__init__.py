"""Sub-role grant ledger."""

from .provenance import REQUIRED_SOURCE_KIND, validate_provenance
from .service import GrantLedger

__all__ = ["GrantLedger", "REQUIRED_SOURCE_KIND", "validate_provenance"]
