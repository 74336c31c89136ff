"""Content restrictions and visibility resolution."""

from .service import RestrictedContent, VisibilityResolver, visibility_spec

__all__ = ["RestrictedContent", "VisibilityResolver", "visibility_spec"]
