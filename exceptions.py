"""Exception types for the phone-home license client."""


class PhoneHomeError(Exception):
    """Base exception for all phone-home errors."""
    pass


class LicenseConfigError(PhoneHomeError):
    """The config directory cannot hold a license key.

    This is the only error that leaves PhoneHomeClient.phone_home().
    It needs an operator to fix filesystem permissions.
    """
    def __init__(self, config_path: str):
        self.config_path = config_path
        super().__init__(f"Cannot write to config directory: {config_path}")


class LicenseStoreError(PhoneHomeError):
    """Base exception for license key file errors."""
    pass


class AlreadyLicensed(LicenseStoreError):
    """A valid license key file already exists and must not be overwritten."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cannot overwrite an existing valid license key file: {path}")


class NotWritable(LicenseStoreError):
    """The license key directory lacks write permission."""
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"License key directory is not writable: {path}")


class KeyWriteFailed(LicenseStoreError):
    """The file system rejected the license key write."""
    def __init__(self, path: str, cause: Exception = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Could not write license key file {path}: {cause}")


class TransportError(PhoneHomeError):
    """The licensing authority could not be reached (DNS, timeout, TLS, refused)."""
    def __init__(self, endpoint: str, cause: Exception = None):
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"Error in calling {endpoint}. Reason: {cause}")


class ServerError(PhoneHomeError):
    """The licensing authority answered with a non-200 status or an unparsable body."""
    def __init__(self, endpoint: str, message: str, status_code: int = None):
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(f"Error in calling {endpoint}. {message}")

