"""Tests for configuration loading."""

import yaml

from jobsync.config import Credentials, PipelineConfig, load_config, load_credentials


def test_load_default_config():
    """Loading the project's config.yaml should work."""
    config = load_config()
    assert isinstance(config, PipelineConfig)
    assert [s.scraper_type for s in config.sources] == ["adzuna", "greenhouse", "lever"]
    assert config.sources[0].keywords


def test_load_missing_file():
    """Missing config file returns defaults."""
    config = load_config("/nonexistent/path.yaml")
    assert isinstance(config, PipelineConfig)
    assert len(config.sources) == 0
    assert config.data_dir == "data"


def test_load_empty_file(tmp_path):
    """An empty config file gives the defaults."""
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path).sources == []


def test_enabled_sources_filter():
    """Only enabled sources are returned by enabled_sources."""
    config = load_config()
    config.sources[0].enabled = False
    assert config.sources[0] not in config.enabled_sources
    assert len(config.enabled_sources) == len(config.sources) - 1


def test_custom_config(tmp_path):
    """A custom config with one source should parse correctly."""
    data = {
        "data_dir": "test_data",
        "log_level": "DEBUG",
        "request_timeout_seconds": 5,
        "use_detected_boards": False,
        "sources": [
            {
                "name": "firm-boards",
                "scraper_type": "greenhouse",
                "params": {"boards": [{"token": "gensler", "company": "Gensler"}]},
            }
        ],
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(data))

    config = load_config(path)

    assert config.data_dir == "test_data"
    assert config.log_level == "DEBUG"
    assert config.request_timeout_seconds == 5
    assert config.use_detected_boards is False
    assert len(config.sources) == 1
    assert config.sources[0].enabled is True
    assert config.sources[0].keywords == []
    assert config.sources[0].params["boards"][0]["token"] == "gensler"


def test_credentials_from_environment(monkeypatch, tmp_path):
    """Credentials should be read from environment variables."""
    monkeypatch.setenv("ADZUNA_APP_ID", "id")
    monkeypatch.setenv("ADZUNA_APP_KEY", "key")
    monkeypatch.setenv("WEBFLOW_API_TOKEN", "token")
    monkeypatch.delenv("WEBFLOW_COLLECTION_ID", raising=False)
    monkeypatch.delenv("PDL_API_KEY", raising=False)

    creds = load_credentials(tmp_path / "missing.env")

    assert creds.has_adzuna
    assert not creds.has_webflow
    assert not creds.has_pdl


def test_credentials_from_env_file(monkeypatch, tmp_path):
    """Credentials should be read from a .env file."""
    # setenv first so monkeypatch removes what load_dotenv writes
    monkeypatch.setenv("PDL_API_KEY", "placeholder")
    monkeypatch.delenv("PDL_API_KEY")
    env_file = tmp_path / ".env"
    env_file.write_text("PDL_API_KEY=from-file\n")

    assert load_credentials(env_file).pdl_api_key == "from-file"


def test_empty_credentials_disable_features():
    """Blank credentials mean the matching features are off."""
    creds = Credentials()
    assert not (creds.has_adzuna or creds.has_webflow or creds.has_pdl)
