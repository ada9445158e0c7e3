"""
Compiler: ApprovalConfigurationSet -> CompiledApprovalConfig.

Responsibility:
    Turn a validated source configuration into the frozen runtime artifact:
    kernel ``CategoryInfo`` and ``RouteTemplate`` values with normalized
    stages, plus typed engine settings.

Architecture position:
    Configuration layer.  Called only by ``get_active_config()``.

Invariants enforced:
    - Deterministic compilation: the compiled checksum is the source
      checksum, so the same fragments always identify the same artifact.
    - Every compiled template has passed route validation; its stages are
      stored in normalized form (sorted, explicit approver order).

Failure modes:
    - ConfigurationError if the set fails validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from uuid import UUID

from approval_config.bridges import build_category_info, build_route_template
from approval_config.schema import ApprovalConfigurationSet
from approval_config.store import TemplateStore
from approval_config.validator import validate_configuration
from approval_engines.validation import validate_route_spec
from approval_kernel.domain.approval import CategoryInfo, RouteTemplate
from approval_kernel.exceptions import ConfigurationError


@dataclass(frozen=True)
class EngineSettings:
    """Runtime draft manager settings."""

    max_attempts: int = 3
    retry_backoff_ms: int = 50
    system_actor_id: UUID = UUID("00000000-0000-0000-0000-000000000001")

    @property
    def retry_backoff_seconds(self) -> float:
        return self.retry_backoff_ms / 1000.0


@dataclass(frozen=True)
class CompiledApprovalConfig:
    """The sole runtime configuration artifact."""

    config_id: str
    version: int
    checksum: str
    categories: tuple[CategoryInfo, ...] = field(default_factory=tuple)
    templates: tuple[RouteTemplate, ...] = field(default_factory=tuple)
    settings: EngineSettings = field(default_factory=EngineSettings)
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def template_store(self) -> TemplateStore:
        """Build the read-only template provider for the draft manager."""
        return TemplateStore(self.categories, self.templates)


def compile_config(config: ApprovalConfigurationSet) -> CompiledApprovalConfig:
    """Validate and compile a configuration set."""
    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigurationError(
            config.config_id,
            "validation failed:\n" + "\n".join(f"  - {e}" for e in validation.errors),
        )

    templates = tuple(
        replace(t, stages=validate_route_spec(t.stages))
        for t in (build_route_template(d) for d in config.templates)
    )
    categories = tuple(build_category_info(c, config.templates) for c in config.categories)
    settings = EngineSettings(
        max_attempts=config.engine.max_attempts,
        retry_backoff_ms=config.engine.retry_backoff_ms,
        system_actor_id=UUID(config.engine.system_actor_id),
    )

    return CompiledApprovalConfig(
        config_id=config.config_id,
        version=config.version,
        checksum=config.checksum,
        categories=categories,
        templates=templates,
        settings=settings,
        warnings=tuple(validation.warnings),
    )
