"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the YAML fragments of one configuration set directory and parses
them into typed ``approval_config.schema`` dataclass instances.  This is
build/test tooling; runtime code obtains configuration through
``approval_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ConfigurationError`` naming the file; there are no
  silent defaults for required fields.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  fragments for configuration identity and change detection.

Failure modes
-------------
* Missing directory  -> ``FileNotFoundError`` propagates.
* Malformed YAML or missing keys  -> ``ConfigurationError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    ApprovalConfigurationSet,
    ApproverDef,
    CategoryDef,
    EngineSettingsDef,
    RouteTemplateDef,
    StageDef,
)
from approval_kernel.exceptions import ConfigurationError

ROOT_FILE = "root.yaml"
CATEGORIES_FILE = "categories.yaml"
TEMPLATES_FILE = "templates.yaml"
ENGINE_FILE = "engine.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    A missing optional fragment loads as an empty dict.

    Raises:
        ConfigurationError: if the file is not valid YAML or its top level
            is not a mapping.
    """
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def parse_category(data: dict[str, Any]) -> CategoryDef:
    """Parse a CategoryDef from a dict."""
    return CategoryDef(
        code=str(data["code"]),
        name=data.get("name", data["code"]),
        description=data.get("description", ""),
        is_active=bool(data.get("is_active", True)),
        default_template=data.get("default_template"),
    )


def parse_approver(data: Any) -> ApproverDef:
    """Parse an approver given as a bare user id or a mapping."""
    if isinstance(data, dict):
        return ApproverDef(
            user_id=str(data["user_id"]),
            order_index=data.get("order_index"),
        )
    return ApproverDef(user_id=str(data))


def parse_stage(data: dict[str, Any]) -> StageDef:
    """
    Parse a StageDef from a dict.

    Enum fields stay raw strings here; the validator and the bridges turn
    them into kernel enums.
    """
    return StageDef(
        name=data["name"],
        type=str(data["type"]).lower(),
        mode=str(data.get("mode", "sequential")).lower(),
        rule=str(data.get("rule", "all")).lower(),
        order_index=int(data["order_index"]),
        approvers=tuple(parse_approver(a) for a in data.get("approvers", []) or []),
    )


def parse_template(data: dict[str, Any]) -> RouteTemplateDef:
    """Parse a RouteTemplateDef from a dict."""
    return RouteTemplateDef(
        template_id=str(data["template_id"]),
        name=data.get("name", data["template_id"]),
        category=str(data["category"]),
        stages=tuple(parse_stage(s) for s in data.get("stages", [])),
        is_default=bool(data.get("is_default", False)),
        description=data.get("description", ""),
    )


def parse_engine_settings(data: dict[str, Any]) -> EngineSettingsDef:
    """Parse EngineSettingsDef; every key is optional."""
    defaults = EngineSettingsDef()
    return EngineSettingsDef(
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
        retry_backoff_ms=int(data.get("retry_backoff_ms", defaults.retry_backoff_ms)),
        system_actor_id=str(data.get("system_actor_id", defaults.system_actor_id)),
    )


def load_config_set(directory: Path) -> ApprovalConfigurationSet:
    """
    Assemble an ApprovalConfigurationSet from a fragment directory.

    Raises:
        FileNotFoundError: if ``directory`` does not exist.
        ConfigurationError: on malformed fragments.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {directory}")

    raw = {
        name: load_yaml_file(directory / name)
        for name in (ROOT_FILE, CATEGORIES_FILE, TEMPLATES_FILE, ENGINE_FILE)
    }

    try:
        root = raw[ROOT_FILE]
        categories = tuple(
            parse_category(c) for c in raw[CATEGORIES_FILE].get("categories", [])
        )
        templates = tuple(
            parse_template(t) for t in raw[TEMPLATES_FILE].get("templates", [])
        )
        engine = parse_engine_settings(raw[ENGINE_FILE].get("engine", {}))
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(str(directory), f"malformed fragment: {exc!r}") from exc

    return ApprovalConfigurationSet(
        config_id=str(root.get("config_id", directory.name)),
        version=int(root.get("version", 1)),
        categories=categories,
        templates=templates,
        engine=engine,
        checksum=compute_checksum(raw),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
