"""配置加载、YAML 读写与日志配置测试"""

from __future__ import annotations

import json
import logging

import pytest
import yaml

from lockbuild.core import config as config_module
from lockbuild.core.config import DEFAULT_REGISTRY, Config, get_config, init_config
from lockbuild.utils.logger import JSONFormatter, reset_logging, setup_logging
from lockbuild.utils.yaml_io import MAX_YAML_SIZE, atomic_write, dumps_yaml, load_yaml, loads_yaml


@pytest.fixture(autouse=True)
def _reset_global_config():
    config_module._current = None
    yield
    config_module._current = None


class TestConfig:
    def test_defaults(self) -> None:
        cfg = Config()
        assert cfg.registry == DEFAULT_REGISTRY
        assert "--offline" in cfg.install_args
        assert "--frozen-lockfile" in cfg.install_args

    def test_from_missing_file(self, tmp_path) -> None:
        assert Config.from_file(str(tmp_path / "none.yml")) == Config()

    def test_from_file_with_extra(self, tmp_path) -> None:
        path = tmp_path / "lockbuild.yml"
        path.write_text(
            "registry: https://npm.internal\nfetch_workers: 2\nmirror_note: hello\n",
            encoding="utf-8",
        )
        cfg = Config.from_file(str(path))
        assert cfg.registry == "https://npm.internal"
        assert cfg.fetch_workers == 2
        assert cfg.extra == {"mirror_note": "hello"}
        assert cfg.to_dict()["fetch_workers"] == 2

    def test_global_singleton(self, tmp_path) -> None:
        assert get_config() is get_config()
        path = tmp_path / "c.yml"
        path.write_text("package_manager: /opt/pnpm\n", encoding="utf-8")
        loaded = init_config(str(path))
        assert get_config() is loaded
        assert loaded.package_manager == "/opt/pnpm"


class TestYamlIO:
    def test_core_schema_booleans(self) -> None:
        data = loads_yaml("yes: no\non: off\nflag: true\nother: False\n")
        assert data == {"yes": "no", "on": "off", "flag": True, "other": False}
        assert dumps_yaml({"yes": "no", "flag": True}) == "yes: no\nflag: true\n"

    def test_dumps_keeps_order(self) -> None:
        text = dumps_yaml({"lockfileVersion": "9.0", "importers": {}, "packages": {}})
        assert text.index("lockfileVersion") < text.index("importers") < text.index("packages")
        assert loads_yaml(text) == {"lockfileVersion": "9.0", "importers": {}, "packages": {}}

    def test_load_non_mapping(self, tmp_path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        assert load_yaml(path) == {}

    def test_load_invalid(self, tmp_path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text("a: [\n", encoding="utf-8")
        with pytest.raises(yaml.YAMLError):
            load_yaml(path)

    def test_size_limit(self, tmp_path, monkeypatch) -> None:
        path = tmp_path / "big.yml"
        path.write_text("a: 1\n", encoding="utf-8")
        monkeypatch.setattr("lockbuild.utils.yaml_io.MAX_YAML_SIZE", 2)
        with pytest.raises(ValueError, match="过大"):
            load_yaml(path)
        assert MAX_YAML_SIZE > 2

    def test_atomic_write(self, tmp_path) -> None:
        target = tmp_path / "sub" / "out.yaml"
        atomic_write(target, "x: 1\n")
        atomic_write(target, "x: 2\n")
        assert target.read_text(encoding="utf-8") == "x: 2\n"
        assert [p.name for p in target.parent.iterdir()] == ["out.yaml"]


class TestLogging:
    def teardown_method(self) -> None:
        reset_logging()
        logging.getLogger().setLevel(logging.WARNING)

    def test_setup_replaces_handlers(self) -> None:
        setup_logging("DEBUG")
        setup_logging("WARNING")
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING

    def test_json_formatter(self) -> None:
        record = logging.LogRecord(
            "lockbuild.core.dep.store", logging.INFO, __file__, 10, "已存储: %s", ("abc",), None,
        )
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "已存储: abc"
        assert data["logger"] == "lockbuild.core.dep.store"
        assert data["level"] == "INFO"
        assert "exception" not in data

    def test_json_formatter_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "失败", (), sys.exc_info(),
            )
        data = json.loads(JSONFormatter().format(record))
        assert "RuntimeError: boom" in data["exception"]
