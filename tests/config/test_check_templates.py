"""Tests for the configuration checking script (scripts/check_templates.py)."""

from scripts.check_templates import main


def test_default_set_passes(capsys):
    assert main([]) == 0
    out = capsys.readouterr().out
    assert "overtime-standard [overtime]" in out
    assert out.strip().endswith("OK")


def test_missing_directory(tmp_path, capsys):
    assert main([str(tmp_path / "missing")]) == 2
    assert "directory not found" in capsys.readouterr().err


def test_validation_errors_fail(tmp_path, capsys):
    (tmp_path / "categories.yaml").write_text(
        "categories:\n  - code: leave\n    name: Leave\n    default_template: ghost\n"
    )
    assert main([str(tmp_path)]) == 1
    out = capsys.readouterr().out
    assert "ERROR:" in out
    assert "VALIDATION FAILED" in out


def test_warnings_fail_only_when_strict(tmp_path, capsys):
    (tmp_path / "categories.yaml").write_text(
        "categories:\n  - code: travel\n    name: Travel\n"
    )
    assert main([str(tmp_path)]) == 0
    assert main([str(tmp_path), "--strict"]) == 1
    assert "WARNING:" in capsys.readouterr().out
