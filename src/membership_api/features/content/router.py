"""Routes for listing, reading and restricting content."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select

from membership_api.api.deps import (
    CurrentActorDep,
    OptionalActorDep,
    SessionDep,
    get_visibility_resolver,
)
from membership_api.core.errors import NotFoundError
from membership_api.features.policies import authorize, can, scope
from membership_api.models import ContentKind, RestrictableMixin, model_for_kind

from .schemas import ContentDetail, ContentSummary, RequiredRolesUpdate
from .service import RestrictedContent, VisibilityResolver

router = APIRouter(prefix="/content", tags=["content"])

ResolverDep = Annotated[VisibilityResolver, Depends(get_visibility_resolver)]


def _summary(kind: ContentKind, item: RestrictableMixin) -> ContentSummary:
    return ContentSummary(
        id=item.id,  # type: ignore[attr-defined]
        kind=kind,
        title=item.title,
        status=item.status,
        published_at=item.published_at,
    )


def _detail(kind: ContentKind, record: RestrictedContent) -> ContentDetail:
    summary = _summary(kind, record.content)
    return ContentDetail(
        **summary.model_dump(),
        required_role_ids=sorted(record.required_role_ids, key=str),
        is_public=record.is_public,
    )


@router.get("/{kind}", response_model=list[ContentSummary], summary="List visible content")
async def list_content(
    kind: ContentKind, actor: OptionalActorDep, session: SessionDep
) -> list[ContentSummary]:
    model = model_for_kind(kind)
    stmt = scope("index", actor, select(model)).order_by(model.title)
    result = await session.execute(stmt)
    return [_summary(kind, item) for item in result.scalars().all()]


@router.get("/{kind}/{content_id}", response_model=ContentDetail)
async def read_content(
    kind: ContentKind,
    content_id: UUID,
    actor: OptionalActorDep,
    resolver: ResolverDep,
) -> ContentDetail:
    content = await resolver.get_content(kind, content_id)
    record = await resolver.restricted(content)
    if not can("show", actor, record):
        # Hidden content is indistinguishable from missing content.
        raise NotFoundError(kind.value, content_id)
    return _detail(kind, record)


@router.post(
    "/{kind}/{content_id}/required-roles",
    response_model=ContentDetail,
    summary="Restrict content to additional sub-roles",
)
async def add_required_roles(
    kind: ContentKind,
    content_id: UUID,
    payload: RequiredRolesUpdate,
    actor: CurrentActorDep,
    resolver: ResolverDep,
) -> ContentDetail:
    content = await resolver.get_content(kind, content_id)
    authorize("restrict", actor, await resolver.restricted(content))
    if payload.sub_role_ids:
        await resolver.add_required_roles_by_id(content, payload.sub_role_ids)
    if payload.sub_role_names:
        await resolver.add_required_roles_by_name(content, payload.sub_role_names)
    return _detail(kind, await resolver.restricted(content))


__all__ = ["router"]
