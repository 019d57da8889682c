"""Tests for the nsdeps command line."""

import argparse
import json

import pytest

from nsdeps.cli import _parse_define, build_parser, main


@pytest.fixture
def project(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "foo.js").write_text("goog.provide('ns.Foo');\nns.Foo = function() {};\n")
    (src / "app.js").write_text(
        "goog.provide('app');\ngoog.require('ns.Foo');\napp.run = function() {};\n"
    )
    (tmp_path / "modules.json").write_text(json.dumps({
        "production_uri": "/js/",
        "output_path_prefix": "out/",
        "modules": {"app": {"inputs": ["app"]}},
    }))
    return tmp_path


class TestParseDefine:
    def test_json_scalars_decoded(self):
        assert _parse_define("goog.DEBUG=false") == ("goog.DEBUG", False)
        assert _parse_define("LEVEL=3") == ("LEVEL", 3)
        assert _parse_define('NAME="x"') == ("NAME", "x")

    def test_plain_string_kept(self):
        assert _parse_define("LOCALE=en_US") == ("LOCALE", "en_US")

    def test_only_first_equals_splits(self):
        assert _parse_define("EXPR=a=b") == ("EXPR", "a=b")

    def test_containers_kept_as_text(self):
        assert _parse_define("LIST=[1,2]") == ("LIST", "[1,2]")

    def test_missing_equals(self):
        with pytest.raises(argparse.ArgumentTypeError):
            _parse_define("NOVALUE")


class TestBuildParser:
    def test_build_flags(self):
        args = build_parser().parse_args(
            ["build", "m.json", "src", "--async", "--define", "A=1", "--define", "B=x"]
        )
        assert args.command == "build"
        assert args.load_async is True
        assert args.define == [("A", 1), ("B", "x")]

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCheckCommand:
    def test_prints_report(self, project, capsys):
        assert main(["check", str(project / "src")]) == 0
        out = capsys.readouterr().out
        assert "Missing requires: 0" in out
        assert "Unnecessary requires: 1" in out
        assert "\tns.Foo" in out

    def test_strict_fails_on_issues(self, project, capsys):
        assert main(["check", "--strict", "--quiet", str(project / "src")]) == 1
        assert capsys.readouterr().out == ""

    def test_exclude_and_extern(self, project, tmp_path):
        externs = tmp_path / "externs"
        externs.mkdir()
        (externs / "ext.js").write_text("goog.provide('ext');\n")
        code = main([
            "check", "--strict", "--quiet",
            "--exclude", "ns.Foo", "--extern", str(externs),
            str(project / "src"),
        ])
        # ns.Foo is excluded, so its require is still unused
        assert code == 1

    def test_json_output(self, project):
        report = project / "report.json"
        assert main(["check", "--quiet", "--json-output", str(report), str(project / "src")]) == 0
        data = json.loads(report.read_text())
        assert data["files_checked"] == 2
        assert list(data["unnecessary_requires"].values()) == [["ns.Foo"]]
        assert data["missing_requires"] == {}

    def test_missing_path(self, project, capsys):
        assert main(["check", str(project / "nope")]) == 1
        assert "Error:" in capsys.readouterr().err


class TestBuildCommand:
    def test_prints_written_paths(self, project, capsys):
        code = main([
            "build", str(project / "modules.json"), str(project / "src"),
            "--define", "goog.DEBUG=false",
            "--cache", str(project / "cache.json"),
        ])
        assert code == 0
        out = capsys.readouterr().out.splitlines()
        assert out == [str((project / "out" / "app.js").resolve())]
        text = (project / "out" / "app.js").read_text()
        assert text.startswith('CLOSURE_DEFINES={"goog.DEBUG":false};')
        assert (project / "cache.json").is_file()

    def test_bad_manifest(self, project, capsys):
        (project / "bad.json").write_text("{}")
        assert main(["build", str(project / "bad.json"), str(project / "src")]) == 1
        assert "Error:" in capsys.readouterr().err
