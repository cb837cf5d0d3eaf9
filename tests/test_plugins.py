"""Tests for the SQL-backed plugin registry."""

import pytest

from models import LicenseKeyStatus
from plugins import SqlPluginRegistry


@pytest.fixture
def registry(session_factory):
    return SqlPluginRegistry(session_factory)


class TestSqlPluginRegistry:

    def test_empty(self, registry):
        assert registry.get_all_plugins() == []
        assert registry.get_plugin_license_key("seo") is None

    def test_register(self, registry):
        registry.set_plugin_license_key("seo", "SEO-KEY")
        registry.set_plugin_license_key("forms", None)

        assert registry.get_all_plugins() == ["forms", "seo"]
        assert registry.get_plugin_license_key("seo") == "SEO-KEY"
        assert registry.get_plugin_license_key("forms") is None

    def test_status(self, registry):
        registry.set_plugin_license_key("seo", "SEO-KEY")

        registry.set_plugin_license_key_status("seo", LicenseKeyStatus.INVALID)

        assert registry.get_plugin_license_key_status("seo") == LicenseKeyStatus.INVALID

    def test_status_for_unknown_plugin_ignored(self, registry):
        registry.set_plugin_license_key_status("ghost", LicenseKeyStatus.VALID)

        assert registry.get_all_plugins() == []
        assert registry.get_plugin_license_key_status("ghost") is None

    def test_new_key_clears_status(self, registry):
        registry.set_plugin_license_key("seo", "OLD")
        registry.set_plugin_license_key_status("seo", LicenseKeyStatus.VALID)

        registry.set_plugin_license_key("seo", "NEW")

        assert registry.get_plugin_license_key("seo") == "NEW"
        assert registry.get_plugin_license_key_status("seo") is None
