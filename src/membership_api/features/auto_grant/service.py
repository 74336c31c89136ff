"""Grant the sub-roles configured on a product or initiation."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from membership_api.common.logging import log_context
from membership_api.core.errors import GrantFailure, MembershipError, PartialGrantFailure
from membership_api.features.grants.provenance import initiation_source, product_source
from membership_api.features.grants.service import GrantLedger
from membership_api.features.sub_roles.registry import SubRoleRegistry
from membership_api.models import (
    GrantedVia,
    Initiation,
    Product,
    SourceRef,
    User,
    UserSubRole,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AutoGrantResult:
    """Outcome of one auto-grant batch."""

    user_id: UUID
    granted: list[UserSubRole] = field(default_factory=list)
    failures: list[GrantFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialGrantFailure(self.failures, granted=self.granted, user_id=self.user_id)


def _parse_ids(raw: Sequence[object]) -> tuple[list[UUID], list[GrantFailure]]:
    parsed: list[UUID] = []
    failures: list[GrantFailure] = []
    for item in raw:
        try:
            value = item if isinstance(item, UUID) else UUID(str(item))
        except (TypeError, ValueError):
            failures.append(
                GrantFailure(str(item), "malformed sub-role id", "auto_grant.role_malformed")
            )
            continue
        if value not in parsed:
            parsed.append(value)
    return parsed, failures


class AutoGrantService:
    """Applies ``auto_grant_sub_roles`` through the grant ledger.

    Every configured id is attempted; an unknown or failing id is recorded in
    the result and never stops its siblings.
    """

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._registry = SubRoleRegistry(session=session)
        self._ledger = GrantLedger(session=session)

    async def grant_for_purchase(self, user: User, product: Product) -> AutoGrantResult:
        return await self._grant_all(
            user,
            product.auto_grant_sub_roles or [],
            source=product_source(product),
            granted_via=GrantedVia.PRODUCT_PURCHASE,
            granted_by=None,
        )

    async def grant_for_initiation(self, initiation: Initiation) -> AutoGrantResult:
        return await self._grant_all(
            initiation.user,
            initiation.auto_grant_sub_roles or [],
            source=initiation_source(initiation),
            granted_via=GrantedVia.INITIATION_COMPLETED,
            granted_by=initiation.conducted_by,
        )

    async def _grant_all(
        self,
        user: User,
        configured: Sequence[object],
        *,
        source: SourceRef,
        granted_via: GrantedVia,
        granted_by: User | None,
    ) -> AutoGrantResult:
        result = AutoGrantResult(user_id=user.id)
        sub_role_ids, result.failures = _parse_ids(configured)
        roles = await self._registry.get_many(sub_role_ids)

        for sub_role_id in sub_role_ids:
            role = roles.get(sub_role_id)
            if role is None:
                result.failures.append(
                    GrantFailure(str(sub_role_id), "unknown sub-role", "auto_grant.role_missing")
                )
                continue
            try:
                record = await self._ledger.grant(
                    user,
                    role,
                    granted_via=granted_via,
                    source=source,
                    granted_by=granted_by,
                )
            except MembershipError as exc:
                result.failures.append(GrantFailure(str(sub_role_id), str(exc)))
                continue
            result.granted.append(record)

        for failure in result.failures:
            logger.warning(
                failure.event,
                extra=log_context(
                    user_id=user.id,
                    sub_role_id=failure.sub_role_id,
                    source=str(source),
                    reason=failure.reason,
                ),
            )
        return result


__all__ = ["AutoGrantResult", "AutoGrantService"]
