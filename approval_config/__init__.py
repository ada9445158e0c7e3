"""
approval_config -- single public entrypoint for approval configuration.

Responsibility:
    Provides the runtime way to obtain configuration through
    ``get_active_config()``.  Returns a ``CompiledApprovalConfig`` holding
    categories, route templates and engine settings as kernel types.
    YAML loading is internal build/test tooling.

Architecture position:
    Configuration -- YAML-driven, validated when loaded.  Sits above
    ``approval_kernel`` and ``approval_engines`` and below
    ``approval_services``.  The kernel MUST NEVER import from here.

Invariants enforced:
    - Load-time validation: every template passes route validation before
      a compiled config is produced.
    - Deterministic compilation: same YAML fragments always produce the
      same checksum.

Failure modes:
    - ``FileNotFoundError`` -- configuration directory missing.
    - ``ConfigurationError`` -- malformed YAML or failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``APPROVAL_CONFIG_TRACE`` log entry with the config id, version,
    checksum and counts, tying routes instantiated afterwards to the exact
    configuration that defined them.
"""

from __future__ import annotations

from pathlib import Path

from approval_config.compiler import (
    CompiledApprovalConfig,
    EngineSettings,
    compile_config,
)
from approval_config.loader import load_config_set
from approval_config.store import TemplateStore
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration set shipped with the package
DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets" / "default"


def get_active_config(config_dir: Path | str | None = None) -> CompiledApprovalConfig:
    """Load, validate and compile a configuration set.

    Args:
        config_dir: Directory holding the YAML fragments.  Defaults to the
            set shipped in approval_config/sets/default.

    Returns:
        CompiledApprovalConfig -- the sole runtime artifact.

    Raises:
        FileNotFoundError: If the directory does not exist.
        ConfigurationError: If parsing or validation fails.
    """
    directory = Path(config_dir) if config_dir is not None else DEFAULT_CONFIG_DIR

    config_set = load_config_set(directory)
    compiled = compile_config(config_set)

    for warning in compiled.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "config_set_id": compiled.config_id,
            "config_set_version": compiled.version,
            "checksum": compiled.checksum,
            "category_count": len(compiled.categories),
            "template_count": len(compiled.templates),
        },
    )
    return compiled


__all__ = [
    "DEFAULT_CONFIG_DIR",
    "CompiledApprovalConfig",
    "EngineSettings",
    "TemplateStore",
    "get_active_config",
]
