"""
Tests for the settings loader and the config -> kernel bridge.

Covers:
- The packaged defaults file parses to the documented values
- RQ_* environment overrides and RQ_SETTINGS_FILE
- Validation: unknown sections, bad log levels, non-positive or boolean
  integers, unknown categories, malformed YAML, missing files
- Checksums are stable and change with the data
- build_requisition_policy carries every knob into the kernel
- get_settings() caches and logs a config trace
"""

import pytest

from requisition_config import get_settings
from requisition_config.bridges import build_requisition_policy
from requisition_config.loader import (
    DEFAULTS_PATH,
    SETTINGS_FILE_ENV,
    apply_env_overrides,
    compute_checksum,
    load_settings,
    parse_settings,
    read_settings_file,
)
from requisition_config.schema import EngineSettings
from requisition_kernel.domain.requisition import RequisitionCategory
from requisition_kernel.exceptions import SettingsError


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def settings_file(tmp_path):
    """Write YAML text to a temp file and return its path."""

    def _write(text: str):
        path = tmp_path / "settings.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fresh_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Loading
# =============================================================================


class TestDefaults:

    def test_packaged_defaults(self):
        settings = load_settings(environ={})
        assert settings.database_url == "sqlite:///requisitions.db"
        assert settings.log_level == "INFO"
        assert settings.unfilled_alert_days == 7
        assert settings.auto_activate_categories == ("operational",)
        assert settings.deletion_approver_roles == ("admin", "jefe_marca")
        assert settings.direct_delete_roles == ("admin",)
        assert settings.brand_codes["papajohns"] == "PJ"
        assert settings.bulk_max_items == 200
        assert len(settings.checksum) == 64

    def test_empty_file_means_schema_defaults(self, settings_file):
        settings = load_settings(settings_file(""), environ={})
        defaults = EngineSettings()
        assert settings.unfilled_alert_days == defaults.unfilled_alert_days
        assert settings.bulk_max_items == defaults.bulk_max_items
        assert settings.brand_codes == {}

    def test_settings_file_from_environment(self, settings_file):
        path = settings_file("requisitions:\n  unfilled_alert_days: 3\n")
        settings = load_settings(environ={SETTINGS_FILE_ENV: str(path)})
        assert settings.unfilled_alert_days == 3


class TestEnvironmentOverrides:

    def test_overrides_win_over_file(self):
        settings = load_settings(
            DEFAULTS_PATH,
            environ={
                "RQ_DATABASE_URL": "postgresql://rq@db/rq",
                "RQ_LOG_LEVEL": "debug",
                "RQ_UNFILLED_ALERT_DAYS": "14",
                "RQ_BULK_MAX_ITEMS": "50",
            },
        )
        assert settings.database_url == "postgresql://rq@db/rq"
        assert settings.log_level == "DEBUG"
        assert settings.unfilled_alert_days == 14
        assert settings.bulk_max_items == 50

    def test_blank_override_is_ignored(self):
        settings = load_settings(DEFAULTS_PATH, environ={"RQ_UNFILLED_ALERT_DAYS": ""})
        assert settings.unfilled_alert_days == 7

    def test_overrides_do_not_mutate_input(self):
        data = {"bulk": {"max_items": 10}}
        merged = apply_env_overrides(data, {"RQ_BULK_MAX_ITEMS": "20"})
        assert merged["bulk"]["max_items"] == "20"
        assert data["bulk"]["max_items"] == 10

    def test_override_into_missing_section(self):
        merged = apply_env_overrides({}, {"RQ_LOG_LEVEL": "WARNING"})
        assert merged == {"logging": {"level": "WARNING"}}


# =============================================================================
# Validation
# =============================================================================


class TestValidation:

    @pytest.mark.parametrize(
        "data, setting",
        [
            ({"notifications": {}}, "notifications"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"database": {"url": "  "}}, "database.url"),
            ({"requisitions": {"unfilled_alert_days": 0}}, "requisitions.unfilled_alert_days"),
            ({"requisitions": {"unfilled_alert_days": True}}, "requisitions.unfilled_alert_days"),
            ({"requisitions": {"unfilled_alert_days": "soon"}}, "requisitions.unfilled_alert_days"),
            ({"bulk": {"max_items": -5}}, "bulk.max_items"),
            (
                {"requisitions": {"auto_activate_categories": ["seasonal"]}},
                "requisitions.auto_activate_categories",
            ),
            ({"requisitions": {"brand_codes": ["PJ"]}}, "requisitions.brand_codes"),
            ({"deletion": {"approver_roles": []}}, "deletion.approver_roles"),
            ({"deletion": {"approver_roles": ["admin", " "]}}, "deletion.approver_roles"),
            ({"bulk": "lots"}, "bulk"),
        ],
    )
    def test_invalid_settings(self, data, setting):
        with pytest.raises(SettingsError) as exc_info:
            parse_settings(data)
        assert exc_info.value.setting == setting
        assert exc_info.value.code == "INVALID_SETTINGS"

    def test_no_auto_activation_is_allowed(self):
        settings = parse_settings({"requisitions": {"auto_activate_categories": []}})
        assert settings.auto_activate_categories == ()

    def test_brand_codes_are_uppercased(self):
        settings = parse_settings({"requisitions": {"brand_codes": {"wendys": " wen "}}})
        assert settings.brand_codes == {"wendys": "WEN"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(SettingsError, match="not found"):
            read_settings_file(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, settings_file):
        with pytest.raises(SettingsError, match="malformed YAML"):
            read_settings_file(settings_file("requisitions: [unclosed\n"))

    def test_top_level_must_be_mapping(self, settings_file):
        with pytest.raises(SettingsError, match="must contain a mapping"):
            read_settings_file(settings_file("- just\n- a list\n"))


class TestChecksum:

    def test_stable_and_order_independent(self):
        a = {"bulk": {"max_items": 5}, "logging": {"level": "INFO"}}
        b = {"logging": {"level": "INFO"}, "bulk": {"max_items": 5}}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_data(self):
        assert compute_checksum({"bulk": {"max_items": 5}}) != compute_checksum(
            {"bulk": {"max_items": 6}}
        )


# =============================================================================
# Bridge and cached entrypoint
# =============================================================================


class TestBridge:

    def test_policy_from_settings(self):
        settings = parse_settings({
            "requisitions": {
                "unfilled_alert_days": 10,
                "auto_activate_categories": ["operational", "managerial"],
                "brand_codes": {"kfc": "kfc"},
            },
            "deletion": {"approver_roles": ["admin"], "direct_delete_roles": []},
        })
        policy = build_requisition_policy(settings)
        assert policy.unfilled_alert_days == 10
        assert policy.auto_activate_categories == frozenset(RequisitionCategory)
        assert policy.deletion_approver_roles == frozenset({"admin"})
        assert policy.direct_delete_roles == frozenset()
        assert policy.brand_code("kfc") == "KFC"


class TestGetSettings:

    def test_cached_and_traced(self, settings_file, monkeypatch, fresh_settings_cache, captured_logs):
        path = settings_file("bulk:\n  max_items: 12\n")
        monkeypatch.setenv(SETTINGS_FILE_ENV, str(path))
        for name in ("RQ_DATABASE_URL", "RQ_LOG_LEVEL", "RQ_UNFILLED_ALERT_DAYS", "RQ_BULK_MAX_ITEMS"):
            monkeypatch.delenv(name, raising=False)

        first = get_settings()
        second = get_settings()
        assert first is second
        assert first.bulk_max_items == 12

        traces = [r for r in captured_logs() if r["message"] == "REQUISITION_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == first.checksum
        assert traces[0]["logger"] == "requisition_kernel.config"

    def test_cache_clear_reloads(self, settings_file, monkeypatch, fresh_settings_cache):
        monkeypatch.setenv(SETTINGS_FILE_ENV, str(settings_file("bulk:\n  max_items: 3\n")))
        monkeypatch.delenv("RQ_BULK_MAX_ITEMS", raising=False)
        assert get_settings().bulk_max_items == 3

        monkeypatch.setenv("RQ_BULK_MAX_ITEMS", "9")
        assert get_settings().bulk_max_items == 3
        get_settings.cache_clear()
        assert get_settings().bulk_max_items == 9
