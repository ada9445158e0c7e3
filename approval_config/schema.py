"""
ApprovalConfigurationSet schema.

Defines the human-authored, reviewable source artifact for approval
configuration: document categories, route templates and engine settings.
YAML fragments are parsed into these types by the loader, checked by the
validator, and compiled into a CompiledApprovalConfig by the compiler.

Key distinction:
  ApprovalConfigurationSet = source artifact (human-authored, versioned)
  CompiledApprovalConfig   = runtime artifact (validated, kernel types)
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CategoryDef:
    """A document category (overtime, leave, expense, ...)."""

    code: str
    name: str
    description: str = ""
    is_active: bool = True
    default_template: str | None = None


# ---------------------------------------------------------------------------
# Route templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApproverDef:
    """One approver of a template stage; ``user_id`` is a UUID string."""

    user_id: str
    order_index: int | None = None


@dataclass(frozen=True)
class StageDef:
    """One stage of a route template, with enum fields as raw strings."""

    name: str
    type: str
    mode: str
    rule: str
    order_index: int
    approvers: tuple[ApproverDef, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RouteTemplateDef:
    """A reusable route for one category."""

    template_id: str
    name: str
    category: str
    stages: tuple[StageDef, ...]
    is_default: bool = False
    description: str = ""


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettingsDef:
    """Draft manager tuning parameters."""

    max_attempts: int = 3
    retry_backoff_ms: int = 50
    system_actor_id: str = "00000000-0000-0000-0000-000000000001"


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalConfigurationSet:
    """Complete source configuration, as assembled from one directory."""

    config_id: str
    version: int
    categories: tuple[CategoryDef, ...] = field(default_factory=tuple)
    templates: tuple[RouteTemplateDef, ...] = field(default_factory=tuple)
    engine: EngineSettingsDef = field(default_factory=EngineSettingsDef)
    checksum: str = ""
