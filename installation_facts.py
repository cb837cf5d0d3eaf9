import uuid
import hashlib
import os
import platform
import sys
import time
from dataclasses import dataclass
from importlib import metadata
from typing import Any, Dict, List, Optional

import psutil
from sqlalchemy.engine import Engine

from config import settings, Settings
from models import AttestationRequest, ServerInfo

@dataclass(frozen=True)
class RequestContext:
    """The web request that triggered a check-in."""
    absolute_url: str
    user_ip: Optional[str] = None
    port: Optional[int] = None
    host_name: str = ""

def get_hardware_fingerprint() -> str:
    """
    Generate a unique hardware fingerprint for this system.
    Combines multiple system identifiers to create a stable ID.
    """
    # Get MAC address (most stable identifier)
    mac = ':'.join(['{:02x}'.format((uuid.getnode() >> elements) & 0xff)
                    for elements in range(0, 2*6, 2)][::-1])

    cpu_count = str(psutil.cpu_count(logical=True))
    system = platform.system()
    machine = platform.machine()

    fingerprint_data = f"{mac}|{cpu_count}|{system}|{machine}"
    return hashlib.sha256(fingerprint_data.encode()).hexdigest()

def get_installed_extensions() -> List[str]:
    """Names of the distributions installed in this interpreter."""
    names = {dist.metadata["Name"] for dist in metadata.distributions()}
    return sorted(name for name in names if name)

def can_spawn_processes() -> bool:
    return sys.platform not in ("emscripten", "wasi") and os.access(sys.executable, os.X_OK)

def get_database_info(engine: Optional[Engine]) -> Dict[str, Optional[str]]:
    if engine is None:
        return {"databaseType": "none", "databaseVersion": None}

    with engine.connect() as connection:
        version_info = connection.dialect.server_version_info

    return {
        "databaseType": engine.dialect.name,
        "databaseVersion": ".".join(str(part) for part in version_info) if version_info else None,
    }

def get_server_info(engine: Optional[Engine] = None) -> ServerInfo:
    """
    Collect runtime facts for reporting to the licensing authority.
    """
    return ServerInfo(
        extensions=get_installed_extensions(),
        pythonVersion=platform.python_version(),
        proc=can_spawn_processes(),
        platform=platform.system(),
        architecture=platform.machine(),
        cpuCount=psutil.cpu_count(logical=True),
        totalMemoryGb=round(psutil.virtual_memory().total / (1024**3), 2),
        hardwareId=get_hardware_fingerprint(),
        **get_database_info(engine),
    )

class InstallationFacts:
    """Builds a fresh AttestationRequest for each check-in."""

    def __init__(
        self,
        context: RequestContext,
        user_email: str = "",
        engine: Optional[Engine] = None,
        app_settings: Settings = settings,
    ):
        self.context = context
        self.user_email = user_email
        self.engine = engine
        self.settings = app_settings

    def build_request(
        self,
        handle: str,
        data: Any = None,
        license_key: Optional[str] = None,
        plugin_license_keys: Optional[Dict[str, Optional[str]]] = None,
    ) -> AttestationRequest:
        return AttestationRequest(
            licenseKey=license_key,
            pluginLicenseKeys=plugin_license_keys or {},
            data=data,
            requestUrl=self.context.absolute_url,
            requestIp=self.context.user_ip,
            requestTime=int(time.time()),
            requestPort=self.context.port,
            localVersion=self.settings.APP_VERSION,
            localEdition=self.settings.APP_EDITION,
            userEmail=self.user_email,
            showBeta=self.settings.SHOW_BETA_UPDATES,
            serverInfo=get_server_info(self.engine),
            handle=handle,
        )
