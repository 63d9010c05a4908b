"""
Tests for configuration loading and process identity resolution.
"""
import pytest

from siblingcast.config.loader import (
    AggregationStrategy,
    Config,
    get_process_identity,
    is_clustered_mode,
    load_config,
    resolve_identity,
    save_config,
    set_process_identity,
)
from siblingcast.utils.exceptions import ConfigError


def test_load_config_from_yaml(sample_config_yaml):
    """Test roster, strategies and logging are parsed"""
    config = load_config(sample_config_yaml)

    assert config.cluster.default_timeout_seconds == 5
    assert [s.process_id for s in config.cluster.siblings] == ["0", "1"]
    assert config.cluster.siblings[0].url == "http://127.0.0.1:9100"
    assert config.cluster.siblings[0].instance_id == "a"
    assert config.cluster.siblings[1].instance_id is None
    assert config.metrics.aggregators == {"app_queue_depth": AggregationStrategy.MAX}
    assert config.metrics.worker_stats is False
    assert config.logging.level == "DEBUG"
    assert config.get_sibling("1").url == "http://127.0.0.1:9101"


def test_load_config_defaults():
    """Test no path means built-in defaults"""
    config = load_config(None)

    assert config.cluster.include_self is True
    assert config.cluster.default_timeout_seconds == 10.0
    assert config.cluster.siblings == []


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.parametrize("content", [
    "cluster: [unclosed",
    "- just\n- a list\n",
    "cluster:\n  default_timeout_seconds: -1\n",
    "cluster:\n  siblings:\n    - {process_id: 0, url: 'ftp://x'}\n",
    "cluster:\n  siblings:\n    - {process_id: 0, url: 'http://a'}\n    - {process_id: 0, url: 'http://b'}\n",
    "metrics:\n  aggregators: {x: median}\n",
])
def test_invalid_config(tmp_path, content):
    """Test invalid files raise ConfigError"""
    path = tmp_path / "bad.yaml"
    path.write_text(content)

    with pytest.raises(ConfigError):
        load_config(path)


def test_unknown_sibling():
    with pytest.raises(ConfigError):
        Config().get_sibling("7")


def test_save_and_reload(tmp_path, sample_config_yaml):
    """Test saved configuration loads back identically"""
    config = load_config(sample_config_yaml)
    target = tmp_path / "nested" / "saved.yaml"

    save_config(config, target)

    assert load_config(target) == config


def test_resolve_identity_from_pm2_environment():
    """Test PM2 cluster-mode variables"""
    identity = resolve_identity({
        "pm_id": "3",
        "name": "api",
        "exec_mode": "cluster_mode",
        "instance_var": "INSTANCE_ID",
        "INSTANCE_ID": "inst-3",
    })

    assert identity.self_id == "3"
    assert identity.service_name == "api"
    assert identity.clustered is True
    assert identity.instance_id == "inst-3"


def test_resolve_identity_defaults_to_standalone():
    """Test an empty environment is a standalone worker"""
    identity = resolve_identity({})

    assert identity.clustered is False
    assert identity.self_id == "0"
    assert identity.instance_id == "0"
    assert identity.service_name == "siblingcast"


def test_resolve_identity_prefers_own_variables():
    """Test SIBLINGCAST_* variables win over PM2 ones"""
    identity = resolve_identity({
        "pm_id": "3",
        "exec_mode": "cluster_mode",
        "SIBLINGCAST_PROCESS_ID": "7",
        "SIBLINGCAST_CLUSTERED": "no",
        "SIBLINGCAST_INSTANCE_ID": "seven",
        "NODE_APP_INSTANCE": "",
    })

    assert identity.self_id == "7"
    assert identity.clustered is False
    assert identity.instance_id == "seven"


def test_resolve_identity_overrides():
    """Test explicit overrides, None meaning unset"""
    identity = resolve_identity({"pm_id": "1"}, overrides={"clustered": True, "self_id": None})

    assert identity.self_id == "1"
    assert identity.clustered is True


def test_identity_is_frozen():
    identity = resolve_identity({})
    with pytest.raises(Exception):
        identity.clustered = True


def test_clustered_mode_is_fixed_once(monkeypatch):
    """Test the mode gate is resolved on first use and then kept"""
    monkeypatch.setenv("SIBLINGCAST_CLUSTERED", "1")
    assert is_clustered_mode() is True

    monkeypatch.setenv("SIBLINGCAST_CLUSTERED", "0")
    assert is_clustered_mode() is True
    assert get_process_identity().clustered is True

    set_process_identity(None)
    assert is_clustered_mode() is False
