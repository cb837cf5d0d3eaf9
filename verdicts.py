"""Last-known license verdicts, kept in the FailureCache for offline decisions."""
from typing import Optional

from failure_cache import FailureCache
from models import AttestationResponse, LicenseKeyStatus

LICENSE_KEY_STATUS_KEY = "licenseKeyStatus"
LICENSED_EDITION_KEY = "licensedEdition"
LICENSED_DOMAIN_KEY = "licensedDomain"
EDITION_TESTABLE_DOMAIN_KEY = "editionTestableDomain@{host}"


class LicenseVerdicts:
    def __init__(self, cache: FailureCache):
        self.cache = cache

    def store(self, response: AttestationResponse, host_name: str) -> None:
        """Record the verdicts of a fully parsed response."""
        self.cache.set(LICENSE_KEY_STATUS_KEY, response.licenseKeyStatus.value)
        self.cache.set(LICENSED_EDITION_KEY, response.licensedEdition)
        self.cache.set(
            EDITION_TESTABLE_DOMAIN_KEY.format(host=host_name),
            1 if response.editionTestableDomain else 0,
        )

        if response.licenseKeyStatus == LicenseKeyStatus.MISMATCHED:
            self.cache.set(LICENSED_DOMAIN_KEY, response.licensedDomain)

    def license_key_status(self) -> Optional[LicenseKeyStatus]:
        value = self.cache.get(LICENSE_KEY_STATUS_KEY)
        return LicenseKeyStatus(value) if value else None

    def licensed_edition(self) -> Optional[str]:
        return self.cache.get(LICENSED_EDITION_KEY)

    def licensed_domain(self) -> Optional[str]:
        return self.cache.get(LICENSED_DOMAIN_KEY)

    def is_edition_testable_domain(self, host_name: str) -> bool:
        return bool(self.cache.get(EDITION_TESTABLE_DOMAIN_KEY.format(host=host_name)))
