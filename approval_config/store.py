"""
TemplateStore -- in-memory, read-only template provider.

Implements the kernel's ``TemplateProvider`` protocol over compiled
configuration.  Holds only frozen values, so handing a template to the
route instantiator can never let runtime state leak back into it.
"""

from __future__ import annotations

from collections.abc import Iterable

from approval_kernel.domain.approval import CategoryInfo, RouteTemplate


class TemplateStore:
    """Categories and route templates keyed for lookup."""

    def __init__(
        self,
        categories: Iterable[CategoryInfo] = (),
        templates: Iterable[RouteTemplate] = (),
    ) -> None:
        self._categories = {c.code: c for c in categories}
        self._templates = {t.template_id: t for t in templates}

    def get_category(self, code: str) -> CategoryInfo | None:
        return self._categories.get(code)

    def list_categories(self, active_only: bool = False) -> list[CategoryInfo]:
        categories = sorted(self._categories.values(), key=lambda c: c.code)
        if active_only:
            return [c for c in categories if c.is_active]
        return categories

    def get_template_by_id(self, template_id: str) -> RouteTemplate | None:
        return self._templates.get(template_id)

    def get_template(self, category: str) -> RouteTemplate | None:
        """Default template of a category.

        Uses the category's ``default_template`` when set, else the single
        template of that category flagged ``is_default``.
        """
        info = self._categories.get(category)
        if info is not None and info.default_template is not None:
            return self._templates.get(info.default_template)
        for template in self._templates.values():
            if template.category == category and template.is_default:
                return template
        return None

    def templates_for(self, category: str) -> list[RouteTemplate]:
        return sorted(
            (t for t in self._templates.values() if t.category == category),
            key=lambda t: t.template_id,
        )
