import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import urlsplit

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Depends, HTTPException, Request

from config import settings
from database import engine, init_db, SessionLocal
from exceptions import LicenseConfigError
from failure_cache import FailureCache, SqlFailureCache
from installation_facts import InstallationFacts, RequestContext, get_hardware_fingerprint
from license_client import PhoneHomeClient, CONNECT_FAILURE_KEY
from license_store import LicenseStore
from models import (
    PhoneHomeRequest,
    PhoneHomeResult,
    PluginLicenseKeyRequest,
    PluginLicenseStatus,
    LicenseStatusResponse,
    HealthCheckResponse,
)
from plugins import SqlPluginRegistry
from verdicts import LicenseVerdicts

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

def get_failure_cache() -> FailureCache:
    return SqlFailureCache(SessionLocal)

def get_plugin_registry() -> SqlPluginRegistry:
    return SqlPluginRegistry(SessionLocal)

def get_license_store() -> LicenseStore:
    return LicenseStore(settings.LICENSE_KEY_PATH, settings.CONFIG_PATH)

def get_http_transport() -> Optional[httpx.BaseTransport]:
    return None

def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        absolute_url=str(request.url),
        user_ip=request.client.host if request.client else None,
        port=request.url.port,
        host_name=request.url.hostname or "",
    )

def site_request_context() -> RequestContext:
    """Context for scheduled check-ins, which have no inbound request."""
    site = urlsplit(settings.SITE_URL)
    return RequestContext(
        absolute_url=settings.SITE_URL,
        port=site.port,
        host_name=site.hostname or "",
    )

def scheduled_phone_home():
    client = PhoneHomeClient(
        get_license_store(),
        get_failure_cache(),
        InstallationFacts(site_request_context(), engine=engine),
        plugins=get_plugin_registry(),
    )
    try:
        result = client.phone_home()
        logger.info("Scheduled phone home finished: %s", result.outcome.value)
    except LicenseConfigError as e:
        logger.error("Scheduled phone home failed: %s", e)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    if settings.PHONE_HOME_SCHEDULE_ENABLED and not scheduler.running:
        scheduler.add_job(
            scheduled_phone_home,
            'interval',
            hours=settings.PHONE_HOME_INTERVAL_HOURS,
            id='license_phone_home',
            replace_existing=True,
        )
        scheduler.start()
    yield
    if scheduler.running:
        scheduler.shutdown(wait=False)

app = FastAPI(
    title="Phone-Home License Client Service",
    description="Checks in with the licensing authority and keeps the last-known license verdict",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# API Endpoints
@app.post("/api/phone-home", response_model=PhoneHomeResult)
def phone_home(
    body: PhoneHomeRequest,
    request: Request,
    license_store: LicenseStore = Depends(get_license_store),
    cache: FailureCache = Depends(get_failure_cache),
    plugins: SqlPluginRegistry = Depends(get_plugin_registry),
    transport: Optional[httpx.BaseTransport] = Depends(get_http_transport),
):
    """
    Check in with the licensing authority.

    Failures other than an unwritable config directory are reported in the
    result body; the previously cached verdict stays in effect.
    """
    client = PhoneHomeClient(
        license_store,
        cache,
        InstallationFacts(get_request_context(request), user_email=body.userEmail, engine=engine),
        plugins=plugins,
        transport=transport,
    )

    try:
        return client.phone_home(body.handle, body.data)
    except LicenseConfigError as e:
        raise HTTPException(status_code=500, detail=str(e))

@app.get("/api/license/status", response_model=LicenseStatusResponse)
def get_license_status(
    request: Request,
    license_store: LicenseStore = Depends(get_license_store),
    cache: FailureCache = Depends(get_failure_cache),
    plugins: SqlPluginRegistry = Depends(get_plugin_registry),
):
    """
    Last-known license verdict, served from the cache without a network call.
    """
    verdicts = LicenseVerdicts(cache)
    return LicenseStatusResponse(
        hasLicenseKey=license_store.read() is not None,
        licenseKeyStatus=verdicts.license_key_status(),
        licensedEdition=verdicts.licensed_edition(),
        licensedDomain=verdicts.licensed_domain(),
        editionTestableDomain=verdicts.is_edition_testable_domain(request.url.hostname or ""),
        connectFailure=bool(cache.get(CONNECT_FAILURE_KEY)),
        plugins=[
            PluginLicenseStatus(
                handle=handle,
                hasLicenseKey=bool(plugins.get_plugin_license_key(handle)),
                licenseKeyStatus=plugins.get_plugin_license_key_status(handle),
            )
            for handle in plugins.get_all_plugins()
        ],
    )

@app.put("/api/plugins/{handle}/license-key", response_model=PluginLicenseStatus)
def set_plugin_license_key(
    handle: str,
    body: PluginLicenseKeyRequest,
    plugins: SqlPluginRegistry = Depends(get_plugin_registry),
):
    """Register a plugin and its license key for the next check-in."""
    license_key: Optional[str] = body.licenseKey.strip() if body.licenseKey else None
    plugins.set_plugin_license_key(handle, license_key or None)
    return PluginLicenseStatus(handle=handle, hasLicenseKey=bool(license_key))

@app.get("/health", response_model=HealthCheckResponse)
def health_check():
    """
    Health check endpoint for container orchestration.
    """
    return {
        "status": "healthy",
        "service": "phonehome-client",
        "version": settings.APP_VERSION,
        "hardwareId": get_hardware_fingerprint(),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
