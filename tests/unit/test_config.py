"""Unit tests for the configuration store."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from mvre_hub import config as config_store
from mvre_hub.config import (
    SOURCE_CLI,
    SOURCE_DEFAULT,
    SOURCE_FILE,
    SOURCE_GENERATED,
    SOURCE_PROMPT,
    Configuration,
)
from mvre_hub.errors import (
    ConfigCorrupt,
    ConfigWriteFailed,
    InvalidOAuthConfig,
    MissingRequiredConfig,
)
from tests.mocks import FakePrompter


def write_config(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestLoad:
    """Tests for load()."""

    def test_absent_file_gives_defaults(self, config_path):
        """Test a missing config file yields an all-defaults Configuration."""
        config = config_store.load(config_path)
        assert config == Configuration()
        assert config.get_source("domain") == SOURCE_DEFAULT

    def test_persisted_values_marked_as_file(self, config_path):
        """Test persisted values carry the config file source."""
        write_config(config_path, {"domain": "hub.example.org", "http_port": 9080})
        config = config_store.load(config_path)
        assert config.domain == "hub.example.org"
        assert config.http_port == 9080
        assert config.get_source("domain") == SOURCE_FILE
        assert config.get_source("acme_email") == SOURCE_DEFAULT

    def test_unknown_keys_ignored(self, config_path):
        """Test files written by newer versions stay readable."""
        write_config(config_path, {"domain": "hub.example.org", "future_field": [1, 2]})
        config = config_store.load(config_path)
        assert config.domain == "hub.example.org"

    def test_null_values_keep_defaults(self, config_path):
        """Test null timestamps do not count as persisted."""
        write_config(config_path, {"created_at": None, "user_image": "img:1"})
        config = config_store.load(config_path)
        assert config.created_at is None
        assert config.user_image == "img:1"

    def test_invalid_json(self, config_path):
        """Test unparsable JSON raises ConfigCorrupt."""
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json")
        with pytest.raises(ConfigCorrupt) as exc_info:
            config_store.load(config_path)
        assert exc_info.value.path == config_path
        assert exc_info.value.exit_code == 1

    def test_non_object_document(self, config_path):
        """Test a JSON array is rejected."""
        write_config(config_path, ["domain"])
        with pytest.raises(ConfigCorrupt):
            config_store.load(config_path)

    def test_wrong_field_type(self, config_path):
        """Test a known field with the wrong type is rejected."""
        write_config(config_path, {"http_port": "8080"})
        with pytest.raises(ConfigCorrupt) as exc_info:
            config_store.load(config_path)
        assert "http_port" in exc_info.value.message

    def test_bool_is_not_a_port(self, config_path):
        """Test booleans are not accepted for integer fields."""
        write_config(config_path, {"hub_port": True})
        with pytest.raises(ConfigCorrupt):
            config_store.load(config_path)

    def test_invalid_profile(self, config_path):
        """Test an unknown profile name is rejected."""
        write_config(config_path, {"profile": "turbo"})
        with pytest.raises(ConfigCorrupt):
            config_store.load(config_path)


class TestMergeTiers:
    """Tests for tier precedence."""

    def test_cli_beats_file_beats_default(self, config_path):
        """Test command line > config file > defaults."""
        write_config(config_path, {"domain": "file.example.org", "acme_email": "file@example.org"})
        persisted = config_store.load(config_path)

        config = config_store.merge_tiers(persisted, {"domain": "cli.example.org"})

        assert config.domain == "cli.example.org"
        assert config.get_source("domain") == SOURCE_CLI
        assert config.acme_email == "file@example.org"
        assert config.get_source("acme_email") == SOURCE_FILE
        assert config.user_image == "mvre-user:latest"
        assert config.get_source("user_image") == SOURCE_DEFAULT

    def test_none_override_means_not_given(self, config_path):
        """Test None overrides leave lower tiers in place."""
        write_config(config_path, {"domain": "file.example.org", "install_notebooks": True})
        persisted = config_store.load(config_path)

        config = config_store.merge_tiers(
            persisted, {"domain": None, "install_notebooks": None}
        )

        assert config.domain == "file.example.org"
        assert config.install_notebooks is True

    def test_false_override_is_explicit(self, config_path):
        """Test an explicit False beats a persisted True."""
        write_config(config_path, {"install_notebooks": True})
        persisted = config_store.load(config_path)

        config = config_store.merge_tiers(persisted, {"install_notebooks": False})

        assert config.install_notebooks is False
        assert config.get_source("install_notebooks") == SOURCE_CLI

    def test_custom_defaults_tier(self):
        """Test a caller-supplied default tier."""
        defaults = Configuration(user_image="site-image:2")
        config = config_store.merge_tiers(Configuration(), {}, defaults)
        assert config.user_image == "site-image:2"
        assert config.get_source("user_image") == SOURCE_DEFAULT

    def test_unknown_override_rejected(self):
        """Test overriding a field that does not exist."""
        with pytest.raises(ValueError, match="Unknown configuration field"):
            config_store.merge_tiers(Configuration(), {"colour": "blue"})

    def test_persisted_not_mutated(self, config_path):
        """Test merging returns a new Configuration."""
        write_config(config_path, {"domain": "file.example.org"})
        persisted = config_store.load(config_path)
        config_store.merge_tiers(persisted, {"domain": "cli.example.org"})
        assert persisted.domain == "file.example.org"


class TestResolve:
    """Tests for resolve()."""

    def test_missing_required_non_interactive(self):
        """Test every absent required field is named in one error."""
        with pytest.raises(MissingRequiredConfig) as exc_info:
            config_store.resolve(Configuration(), {}, interactive=False)

        error = exc_info.value
        assert error.fields == ["domain", "acme_email", "dataset_path"]
        assert "--domain" in error.message
        assert "--acme-email" in error.message
        assert "--dataset-path" in error.message
        assert error.exit_code == 1

    def test_whitespace_counts_as_missing(self, deploy_values):
        """Test blank values do not satisfy required fields."""
        deploy_values["domain"] = "   "
        with pytest.raises(MissingRequiredConfig) as exc_info:
            config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert exc_info.value.fields == ["domain"]

    def test_interactive_prompts_for_missing(self, deploy_values):
        """Test interactive resolution asks only for missing values."""
        del deploy_values["domain"]
        prompter = FakePrompter({"Domain": "prompted.example.org"})

        config = config_store.resolve(
            Configuration(), deploy_values, interactive=True, prompter=prompter
        )

        assert config.domain == "prompted.example.org"
        assert config.get_source("domain") == SOURCE_PROMPT
        assert len(prompter.asked) == 1

    def test_interactive_empty_answer_still_fails(self, deploy_values):
        """Test an empty answer leaves the field missing."""
        del deploy_values["acme_email"]
        with pytest.raises(MissingRequiredConfig) as exc_info:
            config_store.resolve(
                Configuration(), deploy_values, interactive=True, prompter=FakePrompter()
            )
        assert exc_info.value.fields == ["acme_email"]

    def test_interactive_without_prompter(self):
        """Test interactive resolution requires a prompter."""
        with pytest.raises(ValueError):
            config_store.resolve(Configuration(), {}, interactive=True)

    def test_partial_oauth_rejected(self, deploy_values):
        """Test OAuth fields are all-or-nothing."""
        deploy_values["client_id"] = "mvre-hub"
        with pytest.raises(InvalidOAuthConfig) as exc_info:
            config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert "client_secret" in exc_info.value.missing
        assert "--oauth-token-url" in exc_info.value.message

    def test_partial_oauth_checked_before_prompting(self, deploy_values):
        """Test OAuth validation runs before any prompt."""
        del deploy_values["domain"]
        deploy_values["client_secret"] = "secret"
        prompter = FakePrompter({"Domain": "prompted.example.org"})
        with pytest.raises(InvalidOAuthConfig):
            config_store.resolve(
                Configuration(), deploy_values, interactive=True, prompter=prompter
            )
        assert prompter.asked == []

    def test_complete_oauth_accepted(self, deploy_values, oauth_values):
        """Test a full OAuth group resolves."""
        config = config_store.resolve(
            Configuration(), {**deploy_values, **oauth_values}, interactive=False
        )
        assert config.oauth_configured

    def test_no_oauth_accepted(self, deploy_values):
        """Test the empty OAuth group resolves."""
        config = config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert not config.oauth_configured

    def test_production_generates_db_password(self, deploy_values):
        """Test a production deploy gets a generated database password."""
        deploy_values["profile"] = "production"
        config = config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert len(config.db_password) >= 24
        assert config.get_source("db_password") == SOURCE_GENERATED

    def test_production_keeps_persisted_db_password(self, config_path, deploy_values):
        """Test an existing password is never regenerated."""
        write_config(config_path, {"profile": "production", "db_password": "kept-password"})
        persisted = config_store.load(config_path)
        config = config_store.resolve(persisted, deploy_values, interactive=False)
        assert config.db_password == "kept-password"

    def test_standard_has_no_db_password(self, deploy_values):
        """Test the standard profile does not generate a password."""
        config = config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert config.db_password == ""

    def test_deploy_dir_made_absolute(self, deploy_values, tmp_path, monkeypatch):
        """Test a relative deploy dir is resolved against the working directory."""
        monkeypatch.chdir(tmp_path)
        deploy_values["deploy_dir"] = "relative/hub"
        config = config_store.resolve(Configuration(), deploy_values, interactive=False)
        assert Path(config.deploy_dir).is_absolute()
        assert config.deploy_dir == str(Path.cwd() / "relative" / "hub")


class TestConfigurationPaths:
    """Tests for derived host paths."""

    def test_relative_dataset_anchored_at_deploy_dir(self, deploy_dir):
        config = Configuration(deploy_dir=str(deploy_dir), dataset_path="data")
        assert config.dataset_host_path() == deploy_dir / "data"

    def test_absolute_dataset_unchanged(self, deploy_dir):
        config = Configuration(deploy_dir=str(deploy_dir), dataset_path="/srv/mosaic")
        assert config.dataset_host_path() == Path("/srv/mosaic")

    def test_shared_path_defaults_with_notebooks(self, deploy_dir):
        """Test installing notebooks without a shared path uses <deploy>/shared."""
        config = Configuration(deploy_dir=str(deploy_dir), install_notebooks=True)
        assert config.shared_host_path() == deploy_dir / "shared"

    def test_no_shared_path(self, deploy_dir):
        config = Configuration(deploy_dir=str(deploy_dir))
        assert config.shared_host_path() is None


class TestSaveAndDelete:
    """Tests for save() and delete()."""

    def test_save_then_load(self, config_path, base_config):
        """Test a saved configuration loads back unchanged."""
        base_config.created_at = "2026-01-01T00:00:00+00:00"
        config_store.save(config_path, base_config)

        loaded = config_store.load(config_path)
        assert loaded.to_dict() == base_config.to_dict()

    def test_save_is_private(self, config_path, base_config):
        """Test the config file is written with mode 0600."""
        config_store.save(config_path, base_config)
        assert stat.S_IMODE(config_path.stat().st_mode) == 0o600

    def test_save_leaves_no_temp_files(self, config_path, base_config):
        """Test the atomic write cleans up after itself."""
        config_store.save(config_path, base_config)
        config_store.save(config_path, base_config)
        assert [p.name for p in config_path.parent.iterdir()] == ["config.json"]

    def test_save_excludes_sources(self, config_path, base_config):
        """Test source tracking is not persisted."""
        config_store.save(config_path, base_config)
        data = json.loads(config_path.read_text())
        assert "_sources" not in data
        assert data["domain"] == "hub.example.org"

    def test_save_failure(self, tmp_path, base_config):
        """Test a filesystem error raises ConfigWriteFailed."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(ConfigWriteFailed):
            config_store.save(blocker / "config.json", base_config)

    def test_delete(self, config_path, base_config):
        """Test delete() removes the file and reports it."""
        config_store.save(config_path, base_config)
        assert config_store.delete(config_path) is True
        assert not config_path.exists()

    def test_delete_absent(self, config_path):
        """Test deleting a missing file is a no-op."""
        assert config_store.delete(config_path) is False
