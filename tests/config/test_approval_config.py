"""
Tests for approval configuration loading, validation and compilation.

Covers:
- Loader: YAML fragments to ApprovalConfigurationSet, malformed input
- Validator: uniqueness, references, route rules, engine settings
- Compiler: kernel types, normalized stages, deterministic checksum
- TemplateStore lookups
- End-to-end get_active_config over the shipped default set
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from uuid import UUID

import pytest

from approval_config import DEFAULT_CONFIG_DIR, get_active_config
from approval_config.compiler import compile_config
from approval_config.loader import load_config_set, load_yaml_file, parse_approver, parse_stage
from approval_config.schema import (
    ApprovalConfigurationSet,
    ApproverDef,
    CategoryDef,
    EngineSettingsDef,
    RouteTemplateDef,
    StageDef,
)
from approval_config.store import TemplateStore
from approval_config.validator import validate_configuration
from approval_kernel.domain.approval import (
    DEFAULT_SYSTEM_ACTOR_ID,
    StageMode,
    StageRule,
    StageType,
)
from approval_kernel.exceptions import ConfigurationError

USER_A = "00000000-0000-0000-0000-00000000000a"
USER_B = "00000000-0000-0000-0000-00000000000b"


# =========================================================================
# Helpers
# =========================================================================


def approval_stage(order_index=1, approvers=(USER_A,), type_="approval"):
    return StageDef(
        name=f"Stage {order_index}",
        type=type_,
        mode="sequential",
        rule="all",
        order_index=order_index,
        approvers=tuple(ApproverDef(u) for u in approvers),
    )


def make_set(categories=None, templates=None, engine=None) -> ApprovalConfigurationSet:
    return ApprovalConfigurationSet(
        config_id="test",
        version=1,
        categories=tuple(categories if categories is not None else [
            CategoryDef(code="leave", name="Leave", default_template="leave-basic"),
        ]),
        templates=tuple(templates if templates is not None else [
            RouteTemplateDef(
                template_id="leave-basic",
                name="Leave",
                category="leave",
                stages=(approval_stage(),),
            ),
        ]),
        engine=engine or EngineSettingsDef(),
        checksum="abc",
    )


def write_fragments(directory: Path, **files: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, text in files.items():
        (directory / f"{name}.yaml").write_text(text)
    return directory


# =========================================================================
# Loader
# =========================================================================


class TestLoader:

    def test_missing_file_is_empty(self, tmp_path):
        assert load_yaml_file(tmp_path / "absent.yaml") == {}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("categories: [unclosed\n")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_yaml_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_yaml_file(path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_set(tmp_path / "nowhere")

    def test_approver_forms(self):
        assert parse_approver(USER_A) == ApproverDef(USER_A)
        assert parse_approver({"user_id": USER_B, "order_index": 2}) == ApproverDef(USER_B, 2)

    def test_stage_defaults(self):
        stage = parse_stage({"name": "Sign", "type": "APPROVAL", "order_index": 1})
        assert (stage.type, stage.mode, stage.rule) == ("approval", "sequential", "all")
        assert stage.approvers == ()

    def test_load_full_set(self, tmp_path):
        directory = write_fragments(
            tmp_path / "set",
            root="config_id: custom\nversion: 4\n",
            categories="categories:\n  - code: leave\n    name: Leave\n",
            templates=(
                "templates:\n"
                "  - template_id: t1\n"
                "    category: leave\n"
                "    is_default: true\n"
                "    stages:\n"
                "      - name: Approve\n"
                "        type: approval\n"
                "        order_index: 1\n"
                f"        approvers: [\"{USER_A}\"]\n"
            ),
            engine="engine:\n  max_attempts: 5\n",
        )
        config_set = load_config_set(directory)
        assert config_set.config_id == "custom"
        assert config_set.version == 4
        assert config_set.templates[0].name == "t1"
        assert config_set.engine.max_attempts == 5
        assert config_set.engine.retry_backoff_ms == 50

    def test_root_defaults_to_directory_name(self, tmp_path):
        config_set = load_config_set(write_fragments(tmp_path / "nightly"))
        assert config_set.config_id == "nightly"
        assert config_set.version == 1

    def test_malformed_fragment(self, tmp_path):
        directory = write_fragments(
            tmp_path / "set", categories="categories:\n  - name: No code\n",
        )
        with pytest.raises(ConfigurationError, match="malformed"):
            load_config_set(directory)

    def test_checksum_is_deterministic(self, tmp_path):
        first = load_config_set(DEFAULT_CONFIG_DIR)
        second = load_config_set(DEFAULT_CONFIG_DIR)
        assert first.checksum == second.checksum
        assert len(first.checksum) == 64


# =========================================================================
# Validator
# =========================================================================


class TestValidator:

    def test_valid_set(self):
        result = validate_configuration(make_set())
        assert result.is_valid
        assert result.warnings == []

    def test_duplicate_category(self):
        cats = [CategoryDef("leave", "Leave", default_template="leave-basic")] * 2
        result = validate_configuration(make_set(categories=cats))
        assert any("declared 2 times" in e for e in result.errors)

    def test_two_flagged_defaults(self):
        templates = [
            RouteTemplateDef(f"t{i}", "T", "leave", (approval_stage(),), is_default=True)
            for i in range(2)
        ]
        result = validate_configuration(
            make_set(categories=[CategoryDef("leave", "Leave")], templates=templates),
        )
        assert any("is_default" in e for e in result.errors)

    def test_unknown_category_reference(self):
        templates = [RouteTemplateDef("leave-basic", "T", "travel", (approval_stage(),))]
        result = validate_configuration(make_set(templates=templates))
        assert any("unknown category 'travel'" in e for e in result.errors)

    def test_missing_default_template(self):
        cats = [CategoryDef("leave", "Leave", default_template="ghost")]
        result = validate_configuration(make_set(categories=cats))
        assert any("'ghost' does not exist" in e for e in result.errors)

    def test_default_template_of_other_category(self):
        cats = [
            CategoryDef("leave", "Leave", default_template="leave-basic"),
            CategoryDef("expense", "Expense", default_template="leave-basic"),
        ]
        result = validate_configuration(make_set(categories=cats))
        assert any("belongs to 'leave'" in e for e in result.errors)

    def test_active_category_without_default_warns(self):
        cats = [
            CategoryDef("leave", "Leave", default_template="leave-basic"),
            CategoryDef("travel", "Travel"),
            CategoryDef("retired", "Retired", is_active=False),
        ]
        result = validate_configuration(make_set(categories=cats))
        assert result.is_valid
        assert len(result.warnings) == 1
        assert "travel" in result.warnings[0]

    @pytest.mark.parametrize("stage,fragment", [
        (approval_stage(type_="escalation"), "escalation"),
        (approval_stage(type_="reference"), "gating"),
        (approval_stage(approvers=()), "no approvers"),
        (approval_stage(approvers=(USER_A, USER_A)), "more than once"),
        (approval_stage(order_index=2), "contiguous"),
        (approval_stage(approvers=("not-a-uuid",)), "hexadecimal UUID"),
    ])
    def test_template_route_errors(self, stage, fragment):
        templates = [RouteTemplateDef("leave-basic", "T", "leave", (stage,))]
        result = validate_configuration(make_set(templates=templates))
        assert not result.is_valid
        assert any(fragment in e for e in result.errors), result.errors

    def test_engine_settings(self):
        engine = EngineSettingsDef(max_attempts=0, retry_backoff_ms=-1, system_actor_id="robot")
        result = validate_configuration(make_set(engine=engine))
        assert len(result.errors) == 3


# =========================================================================
# Compiler and store
# =========================================================================


class TestCompiler:

    def test_compiles_to_kernel_types(self):
        compiled = compile_config(make_set())
        template = compiled.templates[0]
        stage = template.stages[0]
        assert stage.stage_type is StageType.APPROVAL
        assert stage.mode is StageMode.SEQUENTIAL
        assert stage.rule is StageRule.ALL
        assert stage.approvers[0].user_id == UUID(USER_A)
        assert stage.approvers[0].order_index == 1
        assert compiled.settings.system_actor_id == DEFAULT_SYSTEM_ACTOR_ID
        assert compiled.settings.retry_backoff_seconds == pytest.approx(0.05)

    def test_invalid_set_raises(self):
        cats = [CategoryDef("leave", "Leave", default_template="ghost")]
        with pytest.raises(ConfigurationError, match="validation failed"):
            compile_config(make_set(categories=cats))

    def test_compiled_values_are_frozen(self):
        compiled = compile_config(make_set())
        with pytest.raises(dataclasses.FrozenInstanceError):
            compiled.templates[0].category = "other"


class TestTemplateStore:

    @pytest.fixture
    def store(self) -> TemplateStore:
        return get_active_config().template_store()

    def test_default_template(self, store):
        assert store.get_template("leave").template_id == "leave-standard"

    def test_flagged_default_used_without_category_setting(self):
        templates = [
            RouteTemplateDef("t-flagged", "T", "leave", (approval_stage(),), is_default=True),
            RouteTemplateDef("t-other", "T", "leave", (approval_stage(),)),
        ]
        compiled = compile_config(
            make_set(categories=[CategoryDef("leave", "Leave")], templates=templates),
        )
        store = compiled.template_store()
        assert store.get_template("leave").template_id == "t-flagged"
        assert store.get_category("leave").default_template == "t-flagged"

    def test_unknown_lookups(self, store):
        assert store.get_template("unknown") is None
        assert store.get_template_by_id("unknown") is None
        assert store.get_category("unknown") is None

    def test_category_without_default(self, store):
        assert store.get_template("business_trip") is None

    def test_list_categories(self, store):
        codes = [c.code for c in store.list_categories()]
        assert codes == sorted(codes)
        assert "business_trip" in codes
        assert "business_trip" not in [c.code for c in store.list_categories(active_only=True)]

    def test_templates_for(self, store):
        assert [t.template_id for t in store.templates_for("expense")] == [
            "expense-small",
            "expense-standard",
        ]


# =========================================================================
# End-to-end
# =========================================================================


class TestGetActiveConfig:

    def test_default_set(self):
        compiled = get_active_config()
        assert compiled.config_id == "default"
        assert {c.code for c in compiled.categories} == {
            "overtime", "leave", "expense", "business_trip",
        }
        assert len(compiled.templates) == 4
        assert compiled.warnings == ()

    def test_config_trace_logged(self, captured_logs):
        compiled = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "APPROVAL_CONFIG_TRACE"]
        assert len(traces) == 1
        trace = traces[0]
        assert trace["config_set_id"] == "default"
        assert trace["checksum"] == compiled.checksum
        assert trace["template_count"] == 4

    def test_warnings_logged(self, tmp_path, captured_logs):
        directory = write_fragments(
            tmp_path / "set",
            categories=(
                "categories:\n"
                "  - code: leave\n    name: Leave\n    default_template: t1\n"
                "  - code: travel\n    name: Travel\n"
            ),
            templates=(
                "templates:\n"
                "  - template_id: t1\n"
                "    category: leave\n"
                "    stages:\n"
                "      - name: Approve\n"
                "        type: approval\n"
                "        order_index: 1\n"
                f"        approvers: [\"{USER_A}\"]\n"
            ),
        )
        compiled = get_active_config(directory)
        assert len(compiled.warnings) == 1
        assert any(r["message"] == "config_validation_warning" for r in captured_logs())

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "missing")
