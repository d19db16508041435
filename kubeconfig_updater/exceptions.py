"""Custom exceptions for kubeconfig updater."""


class KubeconfigUpdaterError(Exception):
    """Base exception for all kubeconfig updater errors."""

    pass


class ConfigurationError(KubeconfigUpdaterError):
    """Raised when configuration loading or validation fails."""

    pass


# Credentials


class CredentialsError(KubeconfigUpdaterError):
    """Base exception for all credential-related errors."""

    pass


class MalformedCredentialError(CredentialsError):
    """Raised when a token is not of the form ``<name>:<header>.<claims>.<signature>``."""

    pass


class MissingExpirationClaimError(CredentialsError):
    """Raised when a structurally valid token carries no usable ``exp`` claim."""

    pass


# Provider


class ProviderError(KubeconfigUpdaterError):
    """Base exception for Rancher provider errors."""

    pass


class RancherAuthenticationError(ProviderError):
    """Raised when logging in to Rancher fails."""

    pass


class ProviderQueryFailedError(ProviderError):
    """Raised when a Rancher API query fails or returns an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# Kubeconfig


class KubeconfigError(KubeconfigUpdaterError):
    """Base exception for kubeconfig handling errors."""

    pass


class KubeconfigInvalidError(KubeconfigError):
    """Raised when a kubeconfig file is found but cannot be parsed."""

    pass


class KubeconfigStorageError(KubeconfigError):
    """Raised when there's an error reading or writing the kubeconfig file."""

    pass


class BackupFailedError(KubeconfigStorageError):
    """Raised when the backup of an existing kubeconfig cannot be written."""

    pass


class WriteFailedError(KubeconfigStorageError):
    """Raised when the kubeconfig cannot be written to its target path."""

    pass


class DirectoryNotFoundError(KubeconfigStorageError):
    """Raised when the kubeconfig path points at a directory instead of a file."""

    pass


class UserNotFoundError(KubeconfigError):
    """Raised when a token update targets a user missing from the kubeconfig."""

    def __init__(self, name: str) -> None:
        super().__init__(f"user {name} not found in kubeconfig")
        self.name = name
