from pathlib import Path
from forkrun.config.loader import find_config_file, interpolate_env_vars, load_config

def test_load_config_no_file(tmp_path):
    # Should return a default dict if no file exists
    config = load_config(tmp_path / "nonexistent.yaml")
    assert config == {}

def test_load_config_basic(tmp_path):
    config_file = tmp_path / "forkrun.yaml"
    content = """
forkrun:
  project_name: shop
webapp:
  context_path: /shop
fork:
  stop_port: 8079
artifacts:
  project:
    - path: lib/util.zip
"""
    config_file.write_text(content)

    config = load_config(config_file)
    assert config["forkrun"]["project_name"] == "shop"
    assert config["webapp"]["context_path"] == "/shop"
    assert config["fork"]["stop_port"] == 8079
    assert config["artifacts"]["project"][0]["path"] == "lib/util.zip"

def test_load_config_interpolation(tmp_path, monkeypatch):
    monkeypatch.setenv("FORKRUN_TEST_KEY", "s3cret")
    monkeypatch.delenv("FORKRUN_TEST_MISSING", raising=False)

    config_file = tmp_path / "forkrun.yaml"
    content = """
fork:
  stop_key: "${FORKRUN_TEST_KEY}"
  props_file: "${FORKRUN_TEST_PROPS:child.props}"
  interpreter: "${FORKRUN_TEST_MISSING}"
"""
    config_file.write_text(content)

    config = load_config(config_file)
    assert config["fork"]["stop_key"] == "s3cret"
    assert config["fork"]["props_file"] == "child.props"
    assert config["fork"]["interpreter"] == ""

def test_load_config_drops_unknown_sections(tmp_path):
    config_file = tmp_path / "forkrun.yaml"
    config_file.write_text("unknown_key: true\nfork:\n  skip: true\n")

    config = load_config(config_file)
    assert "unknown_key" not in config
    assert config["fork"] == {"skip": True}

def test_load_config_invalid_yaml_is_empty(tmp_path):
    config_file = tmp_path / "forkrun.yaml"
    config_file.write_text("fork: [unclosed\n")

    assert load_config(config_file) == {}

def test_load_config_non_mapping_is_empty(tmp_path):
    config_file = tmp_path / "forkrun.yaml"
    config_file.write_text("- just\n- a list\n")

    assert load_config(config_file) == {}

def test_interpolate_env_vars_leaves_plain_text(monkeypatch):
    assert interpolate_env_vars("no variables here") == "no variables here"

def test_find_config_file_prefers_root(tmp_path):
    (tmp_path / "forkrun.yaml").write_text("fork: {}\n")
    assert find_config_file(tmp_path) == tmp_path / "forkrun.yaml"

def test_find_config_file_falls_back_to_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert find_config_file(tmp_path / "missing") == Path.cwd() / "forkrun.yaml"
