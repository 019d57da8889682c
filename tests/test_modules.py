"""Tests for the module tree and manifest parser."""

import json
import textwrap

import pytest

from nsdeps.errors import DiscoveryError, ManifestError
from nsdeps.loader import CustomRenderer
from nsdeps.modules import Module, ModuleParser, ModuleTree


# ── Fixtures ──


@pytest.fixture
def src(tmp_path):
    """Five files: a root chain base <- util <- main, plus a settings page."""
    root = tmp_path / "src"
    (root / "settings").mkdir(parents=True)
    (root / "base.js").write_text("goog.provide('app.base');\n")
    (root / "util.js").write_text(textwrap.dedent("""\
        goog.provide('app.util');
        goog.require('app.base');
    """))
    (root / "main.js").write_text(textwrap.dedent("""\
        goog.provide('app.main');
        goog.require('app.util');
    """))
    (root / "settings" / "page.js").write_text(textwrap.dedent("""\
        goog.provide('app.settings.Page');
        goog.require('app.util');
        goog.require('app.widget');
    """))
    (root / "settings" / "widget.js").write_text(textwrap.dedent("""\
        goog.module('app.widget');
        const base = goog.require('app.base');
    """))
    return root


def _manifest(**overrides):
    config = {
        "production_uri": "/static/",
        "output_path_prefix": "/out/",
        "modules": {
            "app": {"inputs": ["app.main"]},
            "settings": {"parent": "app", "inputs": ["app.settings.Page"]},
        },
    }
    config.update(overrides)
    return config


def _names(module):
    return [dep.path.rsplit("/", 1)[-1] for dep in module.deps]


# ── Tests: Module ──


class TestModule:
    def test_walk_is_preorder(self):
        root = Module("root")
        a = Module("a", parent=root)
        b = Module("b", parent=root)
        a1 = Module("a1", parent=a)
        root.children = [a, b]
        a.children = [a1]
        assert [m.name for m in root.walk()] == ["root", "a", "a1", "b"]

    def test_ancestors(self):
        root = Module("root")
        child = Module("child", parent=root)
        leaf = Module("leaf", parent=child)
        assert [m.name for m in leaf.ancestors()] == ["child", "root"]
        assert root.is_root
        assert not leaf.is_root

    def test_tree_lookup_and_output_path(self):
        root = Module("root")
        tree = ModuleTree(root=root, output_path_prefix="/build/js/")
        assert tree.get("root") is root
        assert tree.get("nope") is None
        assert str(tree.output_path(root)) == "/build/js/root.js"


# ── Tests: Parser ──


class TestModuleParser:
    def test_root_deps_dependencies_first(self, src):
        tree = ModuleParser(_manifest(), [src]).parse()
        assert tree.root.name == "app"
        assert _names(tree.root) == ["base.js", "util.js", "main.js"]

    def test_child_skips_ancestor_files(self, src):
        tree = ModuleParser(_manifest(), [src]).parse()
        settings = tree.get("settings")
        assert settings.parent is tree.root
        assert _names(settings) == ["widget.js", "page.js"]

    def test_goog_module_flag_kept(self, src):
        tree = ModuleParser(_manifest(), [src]).parse()
        widget = tree.get("settings").deps[0]
        assert widget.is_module is True
        assert not any(dep.is_module for dep in tree.root.deps)

    def test_module_info_and_uris(self, src):
        tree = ModuleParser(_manifest(), [src]).parse()
        assert tree.module_info == {"app": [], "settings": ["app"]}
        assert tree.module_uris == {
            "app": ["/static/app.js"],
            "settings": ["/static/settings.js"],
        }
        assert tree.production_uri == "/static/"

    def test_dict_config_prefix_used_as_is(self, src):
        tree = ModuleParser(_manifest(output_path_prefix="build/"), [src]).parse()
        assert tree.output_path_prefix == "build/"

    def test_manifest_file_prefix_relative_to_file(self, tmp_path, src):
        manifest = tmp_path / "conf" / "modules.json"
        manifest.parent.mkdir()
        manifest.write_text(json.dumps(_manifest(output_path_prefix="build/")))
        tree = ModuleParser(manifest, [src]).parse()
        assert tree.output_path_prefix == str((tmp_path / "conf").resolve() / "build") + "/"

    def test_input_by_path(self, tmp_path, src):
        manifest = tmp_path / "modules.json"
        manifest.write_text(json.dumps({
            "modules": {"app": {"inputs": ["src/util.js"]}},
        }))
        tree = ModuleParser(manifest, [src]).parse()
        assert _names(tree.root) == ["base.js", "util.js"]

    def test_shared_input_listed_once(self, src):
        config = _manifest(modules={"app": {"inputs": ["app.main", "app.util", "app.base"]}})
        tree = ModuleParser(config, [src]).parse()
        assert _names(tree.root) == ["base.js", "util.js", "main.js"]

    def test_wrapper_becomes_custom_renderer(self, src):
        config = _manifest()
        config["modules"]["settings"]["wrapper"] = "/* %name% */"
        tree = ModuleParser(config, [src]).parse()
        assert isinstance(tree.get("settings").renderer, CustomRenderer)
        assert tree.root.renderer is None

    def test_callable_wrapper_in_dict_config(self, src):
        config = _manifest()
        config["modules"]["app"]["wrapper"] = lambda context, module: module.name
        tree = ModuleParser(config, [src]).parse()
        assert tree.root.renderer.render(tree.root, None) == "app"

    def test_cache_is_filled(self, tmp_path, src):
        from nsdeps.cache import SourceCache

        cache = SourceCache(tmp_path / "cache.json")
        parser = ModuleParser(_manifest(), [src], cache=cache)
        assert parser.cache is cache
        parser.parse()
        cache.save()
        assert len(json.loads((tmp_path / "cache.json").read_text())) == 5


class TestModuleParserErrors:
    def test_no_modules(self, src):
        with pytest.raises(ManifestError, match="at least one module"):
            ModuleParser({"modules": {}}, [src]).parse()

    def test_two_roots(self, src):
        config = _manifest(modules={
            "a": {"inputs": ["app.main"]},
            "b": {"inputs": ["app.base"]},
        })
        with pytest.raises(ManifestError, match="exactly one root"):
            ModuleParser(config, [src]).parse()

    def test_unknown_parent(self, src):
        config = _manifest(modules={
            "a": {"inputs": ["app.main"]},
            "b": {"parent": "zzz", "inputs": ["app.base"]},
        })
        with pytest.raises(ManifestError, match="unknown parent"):
            ModuleParser(config, [src]).parse()

    def test_parent_cycle(self, src):
        config = _manifest(modules={
            "a": {"inputs": ["app.main"]},
            "b": {"parent": "c", "inputs": ["app.base"]},
            "c": {"parent": "b", "inputs": ["app.util"]},
        })
        with pytest.raises(ManifestError, match="cycle"):
            ModuleParser(config, [src]).parse()

    def test_missing_inputs(self, src):
        config = _manifest(modules={"a": {}})
        with pytest.raises(ManifestError, match="must list its inputs"):
            ModuleParser(config, [src]).parse()

    def test_unknown_input(self, src):
        config = _manifest(modules={"a": {"inputs": ["no.such.Thing"]}})
        with pytest.raises(ManifestError, match="neither a provided namespace"):
            ModuleParser(config, [src]).parse()

    def test_unprovided_require(self, tmp_path):
        (tmp_path / "a.js").write_text("goog.provide('a');\ngoog.require('ghost');\n")
        config = {"modules": {"a": {"inputs": ["a"]}}}
        with pytest.raises(ManifestError, match="'ghost' required by"):
            ModuleParser(config, [tmp_path]).parse()

    def test_invalid_json(self, tmp_path, src):
        manifest = tmp_path / "bad.json"
        manifest.write_text("{oops")
        with pytest.raises(ManifestError, match="Invalid JSON"):
            ModuleParser(manifest, [src]).parse()

    def test_manifest_not_an_object(self, tmp_path, src):
        manifest = tmp_path / "list.json"
        manifest.write_text("[]")
        with pytest.raises(ManifestError, match="JSON object"):
            ModuleParser(manifest, [src]).parse()

    def test_missing_manifest(self, tmp_path, src):
        with pytest.raises(ManifestError, match="Could not read"):
            ModuleParser(tmp_path / "nope.json", [src]).parse()

    def test_missing_js_path(self, tmp_path):
        with pytest.raises(DiscoveryError):
            ModuleParser(_manifest(), [tmp_path / "nope"]).parse()

    @pytest.mark.parametrize("wrapper", [5, {"template": "x"}, ["x"]])
    def test_wrapper_of_wrong_type(self, src, wrapper):
        config = _manifest()
        config["modules"]["settings"]["wrapper"] = wrapper
        with pytest.raises(ManifestError, match="wrapper must be a string"):
            ModuleParser(config, [src]).parse()


class TestDeepRequireChains:
    def test_chain_deeper_than_recursion_limit(self, tmp_path):
        depth = 1500
        (tmp_path / "n0000.js").write_text("goog.provide('chain.n0000');\n")
        for i in range(1, depth):
            (tmp_path / f"n{i:04d}.js").write_text(
                f"goog.provide('chain.n{i:04d}');\ngoog.require('chain.n{i - 1:04d}');\n"
            )
        config = {"modules": {"app": {"inputs": [f"chain.n{depth - 1:04d}"]}}}
        tree = ModuleParser(config, [tmp_path]).parse()
        assert len(tree.root.deps) == depth
        assert tree.root.deps[0].provides == ["chain.n0000"]
        assert tree.root.deps[-1].provides == [f"chain.n{depth - 1:04d}"]

    def test_require_cycle_places_each_file_once(self, tmp_path):
        (tmp_path / "a.js").write_text("goog.provide('a');\ngoog.require('b');\n")
        (tmp_path / "b.js").write_text("goog.provide('b');\ngoog.require('a');\n")
        tree = ModuleParser({"modules": {"app": {"inputs": ["a"]}}}, [tmp_path]).parse()
        assert [dep.provides for dep in tree.root.deps] == [["b"], ["a"]]
