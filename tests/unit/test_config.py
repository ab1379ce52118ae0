"""
Unit tests for the configuration resolver.

Run with: pytest tests/unit/test_config.py -v
"""

import pytest
import yaml

from codethreat.core.config import DEFAULTS, ConfigResolver, EffectiveConfig, config_template
from codethreat.core.credentials import CredentialStore
from codethreat.core.exceptions import ConfigurationError
from codethreat.core.models import ExportFormat, ScanType


@pytest.fixture
def dirs(tmp_path):
    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    return project, home


def make_resolver(dirs, environ=None, config_path=None):
    project, home = dirs
    return ConfigResolver(config_path=config_path, cwd=project, home=home, environ=environ or {})


def write_yaml(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


class TestLayering:
    """Test source precedence: defaults < file < credentials < env < overrides"""

    def test_defaults_only(self, dirs):
        """Test built-in defaults when nothing else is set"""
        config = make_resolver(dirs).resolve()

        assert config.server_url == DEFAULTS["server_url"]
        assert config.default_timeout == 1800
        assert config.default_poll_interval == 10
        assert config.default_scan_types == [ScanType.SAST, ScanType.SCA, ScanType.SECRETS]
        assert config.default_format is ExportFormat.JSON
        assert config.fail_on_critical is True
        assert config.fail_on_high is False
        assert config.organization_slug is None

    def test_environment_beats_file(self, dirs):
        """Test CT_TIMEOUT overrides default_timeout from the config file"""
        project, _ = dirs
        write_yaml(project / ".codethreat.yml", {"default_timeout": 900})

        config = make_resolver(dirs, environ={"CT_TIMEOUT": "1200"}).resolve()

        assert config.default_timeout == 1200

    def test_only_first_config_file_is_used(self, dirs):
        """Test the project file wins and the home file is not merged in"""
        project, home = dirs
        write_yaml(project / ".codethreat.yml", {"default_branch": "develop"})
        write_yaml(home / ".codethreat" / "config.yml", {"default_branch": "release", "default_timeout": 900})

        resolver = make_resolver(dirs)
        config = resolver.resolve()

        assert config.default_branch == "develop"
        assert config.default_timeout == 1800
        assert resolver.loaded_from == project / ".codethreat.yml"

    def test_user_config_used_without_project_file(self, dirs):
        """Test ~/.codethreat/config.yml is read when the project has none"""
        _, home = dirs
        write_yaml(home / ".codethreat" / "config.yml", {"organizationSlug": "acme"})

        config = make_resolver(dirs).resolve()

        assert config.organization_slug == "acme"

    def test_credentials_between_file_and_environment(self, dirs):
        """Test saved credentials override the file but not the environment"""
        project, home = dirs
        write_yaml(project / ".codethreat.yml", {"server_url": "https://file.example"})
        CredentialStore(home=home).save("ct_saved", "https://saved.example")

        config = make_resolver(dirs).resolve()
        assert config.server_url == "https://saved.example"
        assert config.api_key == "ct_saved"

        config = make_resolver(dirs, environ={"CT_API_KEY": "ct_env"}).resolve()
        assert config.api_key == "ct_env"
        assert config.server_url == "https://saved.example"

    def test_overrides_beat_environment(self, dirs):
        """Test per-invocation overrides win; None overrides are ignored"""
        config = make_resolver(
            dirs, environ={"CT_ORG_SLUG": "from-env", "CT_DEFAULT_BRANCH": "env-branch"}
        ).resolve({"organization_slug": "from-flag", "default_branch": None})

        assert config.organization_slug == "from-flag"
        assert config.default_branch == "env-branch"

    def test_dotenv_file_under_process_environment(self, dirs):
        """Test .env values apply but real variables win"""
        project, _ = dirs
        (project / ".env").write_text("CT_ORG_SLUG=dotenv-org\nCT_DEFAULT_BRANCH=dotenv\n", encoding="utf-8")

        config = make_resolver(dirs, environ={"CT_DEFAULT_BRANCH": "process"}).resolve()

        assert config.organization_slug == "dotenv-org"
        assert config.default_branch == "process"

    def test_production_url_fallback(self, dirs):
        """Test CT_PRODUCTION_URL is used when CT_SERVER_URL is unset"""
        config = make_resolver(dirs, environ={"CT_PRODUCTION_URL": "https://prod.example"}).resolve()
        assert config.server_url == "https://prod.example"

        config = make_resolver(
            dirs,
            environ={"CT_PRODUCTION_URL": "https://prod.example", "CT_SERVER_URL": "https://ct.example"},
        ).resolve()
        assert config.server_url == "https://ct.example"

    def test_environment_value_parsing(self, dirs):
        """Test list and boolean environment variables"""
        config = make_resolver(dirs, environ={
            "CT_DEFAULT_SCAN_TYPES": "sast, iac",
            "CT_FAIL_ON_CRITICAL": "no",
            "CT_FAIL_ON_HIGH": "TRUE",
            "CT_COLORS": "false",
            "CT_MAX_VIOLATIONS": "50",
        }).resolve()

        assert config.default_scan_types == [ScanType.SAST, ScanType.IAC]
        assert config.fail_on_critical is True
        assert config.fail_on_high is True
        assert config.colors is False
        assert config.max_violations == 50

    def test_config_is_frozen(self, dirs):
        """Test the resolved snapshot is immutable"""
        config = make_resolver(dirs).resolve()

        with pytest.raises(Exception):
            config.default_timeout = 60


class TestValidation:
    """Test bounds and format checks"""

    @pytest.mark.parametrize("timeout", ["60", "3600"])
    def test_timeout_bounds_accepted(self, dirs, timeout):
        """Test the timeout bounds are inclusive"""
        config = make_resolver(dirs, environ={"CT_TIMEOUT": timeout}).resolve()
        assert config.default_timeout == int(timeout)

    @pytest.mark.parametrize("timeout", ["59", "3601"])
    def test_timeout_out_of_bounds_rejected(self, dirs, timeout):
        """Test timeouts outside 60..3600 raise"""
        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs, environ={"CT_TIMEOUT": timeout}).resolve()

        assert exc_info.value.field == "default_timeout"
        assert "between 60 and 3600" in str(exc_info.value)

    @pytest.mark.parametrize("interval,valid", [("4", False), ("5", True), ("60", True), ("61", False)])
    def test_poll_interval_bounds(self, dirs, interval, valid):
        """Test poll intervals outside 5..60 raise"""
        resolver = make_resolver(dirs, environ={"CT_POLL_INTERVAL": interval})

        if valid:
            assert resolver.resolve().default_poll_interval == int(interval)
        else:
            with pytest.raises(ConfigurationError) as exc_info:
                resolver.resolve()
            assert exc_info.value.field == "default_poll_interval"

    def test_server_url_requires_scheme(self, dirs):
        """Test server URLs must be http(s)"""
        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs).resolve({"server_url": "api.codethreat.com"})

        assert exc_info.value.field == "server_url"

    def test_non_integer_timeout_names_field(self, dirs):
        """Test a non-numeric CT_TIMEOUT is reported against default_timeout"""
        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs, environ={"CT_TIMEOUT": "soon"}).resolve()

        assert exc_info.value.field == "default_timeout"

    def test_unknown_scan_type_rejected(self, dirs):
        """Test an unknown scan type in the file is a configuration error"""
        project, _ = dirs
        write_yaml(project / ".codethreat.yml", {"default_scan_types": "sast,dast"})

        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs).resolve()

        assert exc_info.value.field == "default_scan_types"

    def test_malformed_yaml_is_fatal(self, dirs):
        """Test a broken config file raises instead of being skipped"""
        project, _ = dirs
        (project / ".codethreat.yml").write_text("server_url: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs).resolve()

        assert exc_info.value.field == "config_file"

    def test_non_mapping_yaml_rejected(self, dirs):
        """Test a config file holding a list raises"""
        project, _ = dirs
        (project / ".codethreat.yml").write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            make_resolver(dirs).resolve()

    def test_missing_explicit_config_path(self, dirs, tmp_path):
        """Test --config pointing at a missing file raises"""
        with pytest.raises(ConfigurationError) as exc_info:
            make_resolver(dirs, config_path=tmp_path / "nope.yml").resolve()

        assert exc_info.value.field == "config_file"


class TestUpdateAndSave:
    """Test in-memory updates and persistence"""

    def test_update_does_not_reread_files(self, dirs):
        """Test update merges into the snapshot without touching disk"""
        project, _ = dirs
        resolver = make_resolver(dirs)
        resolver.resolve()

        write_yaml(project / ".codethreat.yml", {"default_branch": "changed-on-disk"})
        config = resolver.update({"organization_slug": "acme"})

        assert config.organization_slug == "acme"
        assert config.default_branch == "main"
        assert resolver.config is config

    def test_is_resolved_after_resolve(self, dirs):
        """Test is_resolved flips once the config has been built"""
        resolver = make_resolver(dirs)

        assert resolver.is_resolved is False
        resolver.resolve()
        assert resolver.is_resolved is True

    def test_update_validates(self, dirs):
        """Test update rejects out-of-bounds values"""
        resolver = make_resolver(dirs)
        resolver.resolve()

        with pytest.raises(ConfigurationError):
            resolver.update({"default_timeout": 10})

    def test_save_writes_user_config_without_api_key(self, dirs):
        """Test save persists settings and never the API key"""
        _, home = dirs
        resolver = make_resolver(dirs, environ={"CT_API_KEY": "ct_secret"})
        resolver.resolve()

        path = resolver.save({"default_branch": "develop", "organization_slug": "acme"})

        assert path == home / ".codethreat" / "config.yml"
        saved = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert saved["default_branch"] == "develop"
        assert saved["organization_slug"] == "acme"
        assert "api_key" not in saved
        assert "ct_secret" not in path.read_text(encoding="utf-8")

    def test_save_none_clears_key(self, dirs):
        """Test saving None removes a field"""
        resolver = make_resolver(dirs, environ={"CT_ORG_SLUG": "acme"})
        resolver.resolve()

        path = resolver.save({"organization_slug": None})

        assert "organization_slug" not in yaml.safe_load(path.read_text(encoding="utf-8"))
        assert resolver.config.organization_slug is None

    def test_saved_file_is_loaded_next_run(self, dirs):
        """Test a saved config is picked up by a new resolver"""
        resolver = make_resolver(dirs)
        resolver.resolve()
        resolver.save({"default_timeout": 600})

        assert make_resolver(dirs).resolve().default_timeout == 600

    def test_redacted_masks_api_key(self):
        """Test redacted output hides the API key"""
        config = EffectiveConfig(server_url="https://api.codethreat.test", api_key="ct_secret")

        assert config.redacted()["api_key"] == "***hidden***"

    def test_template_is_valid_yaml(self):
        """Test the init template parses to a mapping"""
        data = yaml.safe_load(config_template())

        assert data["default_timeout"] == 1800
        assert data["fail_on_critical"] is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
