"""Tests for the merge_markdown and table_match_report scripts."""
from __future__ import annotations

import argparse
import importlib.util
from pathlib import Path
from typing import Any

import orjson
import pytest

from mdmerge.match_refiner import TableMatchRefiner
from mdmerge.merger import TemplateParseError

ROOT = Path(__file__).resolve().parents[1]

NAME_VALUE = "| Name | Value |\n|---|---|\n| a | 1 |"
NAME_AGE = "| Name | Age |\n|---|---|\n| a | 30 |"
PRODUCT_PRICE = "| Product | Price |\n|---|---|\n| x | 9 |"


def _load_script(name: str) -> Any:
    script_path = ROOT / "scripts" / f"{name}.py"
    spec = importlib.util.spec_from_file_location(name, script_path)
    assert spec is not None
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestMergeMarkdown:
    def test_writes_output_file(self, tmp_path: Path) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n\nTemplate text\n")
        dest = _write(tmp_path, "dest.md", "# T\n\nDest text\n")
        out = tmp_path / "out" / "merged.md"
        code = mod.main([str(template), str(dest), "--output", str(out)])
        assert code == 0
        assert out.read_text(encoding="utf-8") == "# T\n\nDest text\n"

    def test_stdout_and_stats(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n\nNew section\n")
        dest = _write(tmp_path, "dest.md", "# T\n")
        code = mod.main([
            str(template), str(dest), "--add-template-only", "--preference", "template",
            "--stats",
        ])
        captured = capsys.readouterr()
        assert code == 0
        assert captured.out == "# T\n\nNew section\n"
        stats = orjson.loads(captured.err)
        assert stats["stats"]["nodes_added"] == 1

    def test_stats_on_stdout_with_output(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n")
        dest = _write(tmp_path, "dest.md", "# T\n")
        out = tmp_path / "merged.md"
        assert mod.main([str(template), str(dest), "--output", str(out), "--stats"]) == 0
        payload = orjson.loads(capsys.readouterr().out)
        assert payload["success"] is True

    def test_fuzzy_tables_flag(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", NAME_VALUE + "\n")
        dest = _write(tmp_path, "dest.md", NAME_AGE + "\n")
        args = [str(template), str(dest), "--preference", "template"]

        assert mod.main(args) == 0
        assert capsys.readouterr().out == NAME_AGE + "\n"

        assert mod.main([*args, "--fuzzy-tables"]) == 0
        assert capsys.readouterr().out == NAME_VALUE + "\n"

    def test_config_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n\n- a\n- b\n")
        dest = _write(tmp_path, "dest.md", "# T\n\n- x\n- y\n")
        config = tmp_path / "mdmerge.json"
        config.write_bytes(orjson.dumps({"preference": "template"}))
        assert mod.main([str(template), str(dest), "--config", str(config)]) == 0
        assert capsys.readouterr().out == "# T\n\n- a\n- b\n"

        # Flags override the configuration file.
        args = [str(template), str(dest), "--config", str(config), "--preference", "destination"]
        assert mod.main(args) == 0
        assert capsys.readouterr().out == "# T\n\n- x\n- y\n"

    def test_fuzzy_flag_keeps_configured_table_matching(self, tmp_path: Path) -> None:
        mod = _load_script("merge_markdown")
        config = tmp_path / "mdmerge.json"
        config.write_bytes(orjson.dumps(
            {"table_matching": {"threshold": 0.9, "weights": {"position": 0}}},
        ))
        parser = mod.build_parser()
        base = ["t.md", "d.md", "--config", str(config)]

        args = parser.parse_args([*base, "--fuzzy-tables"])
        refiner = mod.options_from_args(args).match_refiner
        assert isinstance(refiner, TableMatchRefiner)
        assert refiner.threshold == 0.9
        assert refiner.weights["position"] == 0.0

        args = parser.parse_args([*base, "--threshold", "0.6"])
        refiner = mod.options_from_args(args).match_refiner
        assert refiner.threshold == 0.6
        assert refiner.weights["position"] == 0.0

    def test_threshold_implies_fuzzy_tables(self) -> None:
        mod = _load_script("merge_markdown")
        options = mod.options_from_args(mod.build_parser().parse_args(["t.md", "d.md"]))
        assert options.match_refiner is None
        args = mod.build_parser().parse_args(["t.md", "d.md", "--threshold", "0.7"])
        refiner = mod.options_from_args(args).match_refiner
        assert isinstance(refiner, TableMatchRefiner)
        assert refiner.threshold == 0.7

    def test_missing_config_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n")
        missing = tmp_path / "nope.json"
        assert mod.main([str(template), str(template), "--config", str(missing)]) == 1
        assert "nope.json" in capsys.readouterr().err

    def test_missing_input_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("merge_markdown")
        dest = _write(tmp_path, "dest.md", "# T\n")
        assert mod.main([str(tmp_path / "missing.md"), str(dest)]) == 1
        assert "missing.md" in capsys.readouterr().err

    def test_bad_config_exits_1(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mod = _load_script("merge_markdown")
        template = _write(tmp_path, "template.md", "# T\n")
        config = tmp_path / "mdmerge.json"
        config.write_bytes(orjson.dumps({"colour": "blue"}))
        assert mod.main([str(template), str(template), "--config", str(config)]) == 1
        assert "colour" in capsys.readouterr().err

    def test_parse_error_exits_2(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("merge_markdown")

        def failing_merge(*args: object, **kwargs: object) -> None:
            raise TemplateParseError("Template parse error: bad input")

        monkeypatch.setattr(mod, "merge", failing_merge)
        template = _write(tmp_path, "template.md", "# T\n")
        assert mod.main([str(template), str(template)]) == 2
        assert "Template parse error" in capsys.readouterr().err


class TestTableMatchReport:
    def test_build_report(self) -> None:
        mod = _load_script("table_match_report")
        report = mod.build_report(
            NAME_VALUE + "\n\n" + PRODUCT_PRICE,
            "# Heading\n\n" + NAME_AGE,
        )
        assert [t["header"] for t in report["template_tables"]] == [
            ["Name", "Value"], ["Product", "Price"],
        ]
        assert report["dest_tables"][0]["start_line"] == 3
        assert len(report["pairs"]) == 2
        assert report["pairs"][0]["score"] == pytest.approx(0.75)
        assert report["matches"] == [{"template_index": 0, "dest_index": 0, "score": 0.75}]

    def test_threshold_and_weights(self) -> None:
        mod = _load_script("table_match_report")
        report = mod.build_report(
            NAME_VALUE, NAME_AGE, threshold=0.99, weights={"position": 0.0},
        )
        assert report["matches"] == []
        assert report["weights"]["position"] == 0.0

    def test_main_prints_json(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        mod = _load_script("table_match_report")
        template = _write(tmp_path, "template.md", NAME_VALUE)
        dest = _write(tmp_path, "dest.md", NAME_AGE)
        assert mod.main([str(template), str(dest), "--weight", "position=0.5"]) == 0
        report = orjson.loads(capsys.readouterr().out)
        assert report["weights"]["position"] == 0.5
        assert len(report["matches"]) == 1

    def test_parse_weight(self) -> None:
        mod = _load_script("table_match_report")
        assert mod.parse_weight("header_match=0.4") == ("header_match", 0.4)
        with pytest.raises(argparse.ArgumentTypeError):
            mod.parse_weight("header_match")

    def test_missing_input_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("table_match_report")
        dest = _write(tmp_path, "dest.md", NAME_AGE)
        assert mod.main([str(tmp_path / "missing.md"), str(dest)]) == 1
        assert "missing.md" in capsys.readouterr().err

    def test_unknown_weight_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        mod = _load_script("table_match_report")
        template = _write(tmp_path, "template.md", NAME_VALUE)
        assert mod.main([str(template), str(template), "--weight", "colour=1"]) == 1
        assert "colour" in capsys.readouterr().err
