import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from config import settings
from exceptions import LicenseConfigError, LicenseStoreError, ServerError, TransportError
from failure_cache import FailureCache
from installation_facts import InstallationFacts
from license_store import LicenseStore
from models import AttestationRequest, AttestationResponse, PhoneHomeOutcome, PhoneHomeResult
from verdicts import LicenseVerdicts

logger = logging.getLogger(__name__)

CORE_HANDLE = "core"
CONNECT_FAILURE_KEY = "connectFailure"


def _limit(seconds: int) -> Optional[int]:
    # 0 means wait indefinitely
    return seconds or None


class PhoneHomeClient:
    """
    Checks in with the licensing authority and records its verdict.

    A transport failure arms a connect-failure breaker in the cache; while it
    is armed, calls return SUPPRESSED without touching the network.
    """

    def __init__(
        self,
        license_store: LicenseStore,
        cache: FailureCache,
        facts: InstallationFacts,
        plugins=None,
        endpoint: Optional[str] = None,
        timeout: int = settings.LICENSE_API_TIMEOUT,
        connect_timeout: int = settings.LICENSE_API_CONNECT_TIMEOUT,
        allow_redirects: bool = settings.LICENSE_API_ALLOW_REDIRECTS,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.license_store = license_store
        self.cache = cache
        self.facts = facts
        self.plugins = plugins
        self.endpoint = (endpoint or settings.LICENSE_API_URL) + settings.ENDPOINT_SUFFIX
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.allow_redirects = allow_redirects
        self.transport = transport
        self.clock = clock
        self.verdicts = LicenseVerdicts(cache)
        self.user_agent = f"{settings.PRODUCT_NAME}/{settings.APP_VERSION} python-httpx/{httpx.__version__}"

    def phone_home(self, handle: str = CORE_HANDLE, data: Any = None) -> PhoneHomeResult:
        """
        Send installation facts to the licensing authority.

        Raises:
            LicenseConfigError: No license key is installed and the config
                directory cannot be written, so no key could be saved.
        """
        try:
            license_key = self.license_store.read()
            missing_license_key = license_key is None

            # No point acquiring a key we cannot persist
            if missing_license_key and not self.license_store.is_writable():
                raise LicenseConfigError(str(self.license_store.config_path))

            if self.cache.get(CONNECT_FAILURE_KEY):
                logger.debug("Skipping call to %s after a recent connect failure", self.endpoint)
                return PhoneHomeResult(outcome=PhoneHomeOutcome.SUPPRESSED)

            request = self.facts.build_request(
                handle,
                data=data,
                license_key=license_key,
                plugin_license_keys=self._get_plugin_license_keys(),
            )

            try:
                attestation = self._exchange(request)
            except TransportError as e:
                logger.warning("%s", e)
                self._arm_breaker()
                return PhoneHomeResult(outcome=PhoneHomeOutcome.TRANSPORT_ERROR, error=str(e))
            except ServerError as e:
                logger.warning("%s", e)
                return PhoneHomeResult(outcome=PhoneHomeOutcome.SERVER_ERROR, error=str(e))

            self._apply(attestation, missing_license_key)
            return PhoneHomeResult(outcome=PhoneHomeOutcome.SUCCESS, response=attestation)

        except LicenseConfigError as e:
            logger.error("Error in phone_home. Message: %s", e)
            raise
        except Exception as e:
            logger.exception("Error in phone_home. Message: %s", e)
            self._arm_breaker()
            return PhoneHomeResult(outcome=PhoneHomeOutcome.UNEXPECTED_ERROR, error=str(e))

    def _exchange(self, request: AttestationRequest) -> AttestationResponse:
        """
        POST the request and decode the reply.

        Any completed exchange clears the breaker: the server is reachable
        even when it answers with an error.
        """
        started = self.clock()
        try:
            with self._http_client() as client:
                with client.stream("POST", self.endpoint, json=request.to_payload()) as response:
                    status_code = response.status_code
                    body = self._read_body(response, started)
        except httpx.TransportError as e:
            raise TransportError(self.endpoint, e) from e

        self._clear_breaker()

        if status_code != 200:
            text = body.decode("utf-8", errors="replace")
            raise ServerError(self.endpoint, f"Response: {text}", status_code)

        try:
            return AttestationResponse.decode(body)
        except ValueError as e:
            raise ServerError(self.endpoint, f"Unparsable response: {e}", status_code) from e

    def _read_body(self, response: httpx.Response, started: float) -> bytes:
        """Read the body; the timeout bounds the whole transfer, not each read."""
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if self.timeout and self.clock() - started > self.timeout:
                raise httpx.ReadTimeout(
                    f"Transfer took longer than {self.timeout}s",
                    request=response.request,
                )
        return b"".join(chunks)

    def _apply(self, attestation: AttestationResponse, missing_license_key: bool) -> None:
        if missing_license_key and attestation.licenseKey:
            try:
                self.license_store.write(attestation.licenseKey)
            except LicenseStoreError as e:
                # The verdict is still valid information
                logger.error("Could not save the issued license key: %s", e)

        self.verdicts.store(attestation, self.facts.context.host_name)

        if self.plugins is not None:
            for plugin_handle, status in attestation.pluginLicenseKeyStatuses.items():
                self.plugins.set_plugin_license_key_status(plugin_handle, status)

    def _get_plugin_license_keys(self) -> Dict[str, Optional[str]]:
        if self.plugins is None:
            return {}

        return {
            plugin_handle: self.plugins.get_plugin_license_key(plugin_handle)
            for plugin_handle in self.plugins.get_all_plugins()
        }

    def _http_client(self) -> httpx.Client:
        return httpx.Client(
            headers={"User-Agent": self.user_agent},
            timeout=httpx.Timeout(_limit(self.timeout), connect=_limit(self.connect_timeout)),
            follow_redirects=self.allow_redirects,
            transport=self.transport,
        )

    def _arm_breaker(self):
        # Cache the failure so we don't try again for a while
        self.cache.set(CONNECT_FAILURE_KEY, True, settings.CONNECT_FAILURE_TTL_SECONDS)

    def _clear_breaker(self):
        if self.cache.get(CONNECT_FAILURE_KEY):
            self.cache.delete(CONNECT_FAILURE_KEY)
