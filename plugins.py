from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from database import PluginLicense
from models import LicenseKeyStatus


class SqlPluginRegistry:
    """
    Plugin license keys and their last reported status, stored in plugin_licenses.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_all_plugins(self) -> List[str]:
        with self._session_factory() as db:
            rows = db.query(PluginLicense.handle).order_by(PluginLicense.handle).all()
            return [handle for (handle,) in rows]

    def get_plugin_license_key(self, handle: str) -> Optional[str]:
        with self._session_factory() as db:
            plugin = db.get(PluginLicense, handle)
            return plugin.license_key if plugin else None

    def get_plugin_license_key_status(self, handle: str) -> Optional[LicenseKeyStatus]:
        with self._session_factory() as db:
            plugin = db.get(PluginLicense, handle)
            if not plugin or not plugin.license_key_status:
                return None
            return LicenseKeyStatus(plugin.license_key_status)

    def set_plugin_license_key(self, handle: str, license_key: Optional[str]) -> None:
        """Register a plugin, or replace its key; clears any stale status."""
        with self._session_factory() as db:
            plugin = db.get(PluginLicense, handle)
            if plugin is None:
                plugin = PluginLicense(handle=handle)
                db.add(plugin)

            plugin.license_key = license_key
            plugin.license_key_status = None
            plugin.status_synced_at = None
            db.commit()

    def set_plugin_license_key_status(self, handle: str, status: LicenseKeyStatus) -> None:
        """
        Record the status reported for a plugin. Statuses for plugins that are
        not registered locally are ignored.
        """
        with self._session_factory() as db:
            plugin = db.get(PluginLicense, handle)
            if plugin is None:
                return

            plugin.license_key_status = LicenseKeyStatus(status).value
            plugin.status_synced_at = datetime.utcnow()
            db.commit()
