"""Central exports for membership SQLAlchemy models."""

from .content import (
    RESTRICTABLE_MODELS,
    ContentKind,
    ContentRef,
    ContentSubRole,
    Event,
    Product,
    PublicationStatus,
    RestrictableMixin,
    WikiPage,
    model_for_kind,
)
from .grant import ACTIVE_GRANT_PREDICATE, GrantedVia, SourceKind, SourceRef, UserSubRole
from .initiation import SUCCESS_STATUSES, Initiation, InitiationStatus
from .order_request import (
    APPROVED_STATES,
    ORDER_REQUEST_TRANSITIONS,
    OrderRequest,
    OrderRequestStatus,
)
from .sub_role import SubRole
from .user import ADMIN_CLASSIFICATIONS, APPROVER_CLASSIFICATIONS, User, UserClassification

__all__ = [
    "ACTIVE_GRANT_PREDICATE",
    "ADMIN_CLASSIFICATIONS",
    "APPROVED_STATES",
    "APPROVER_CLASSIFICATIONS",
    "ContentKind",
    "ContentRef",
    "ContentSubRole",
    "Event",
    "GrantedVia",
    "Initiation",
    "InitiationStatus",
    "ORDER_REQUEST_TRANSITIONS",
    "OrderRequest",
    "OrderRequestStatus",
    "Product",
    "PublicationStatus",
    "RESTRICTABLE_MODELS",
    "RestrictableMixin",
    "SUCCESS_STATUSES",
    "SourceKind",
    "SourceRef",
    "SubRole",
    "User",
    "UserClassification",
    "UserSubRole",
    "WikiPage",
    "model_for_kind",
]
