"""Fusion provider - connection configuration for a Fusion control plane."""

from functools import cached_property
from typing import Self

from pydantic import BaseModel, ConfigDict, SecretStr

from fusion_provisioner.core.client import Backend, RestBackend


class TokenAuth(BaseModel):
    """Bearer token authentication for the Fusion API."""

    access_token: SecretStr


class FusionProvider(BaseModel):
    """Connection configuration for a Fusion control plane.

    For normal use, provide host and auth. Tests and embedding code can inject
    any object implementing the ``Backend`` protocol via ``from_backend``.

    Examples:
        provider = FusionProvider(
            host="https://api.pure1.purestorage.com/fusion",
            auth=TokenAuth(access_token="..."),
        )

        provider = FusionProvider.from_backend(FakeBackend())
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    host: str | None = None
    auth: TokenAuth | None = None
    verify_ssl: bool = True
    request_timeout: float = 30.0

    _injected_backend: Backend | None = None

    @classmethod
    def from_backend(cls, backend: Backend) -> Self:
        """Create a provider around a pre-built backend."""
        provider = cls.model_construct()
        provider._injected_backend = backend
        return provider

    @cached_property
    def backend(self) -> Backend:
        """Get the backend, building a REST backend on first use."""
        if self._injected_backend is not None:
            return self._injected_backend

        if self.host is None or self.auth is None:
            raise ValueError(
                "Either provide host+auth, or use FusionProvider.from_backend() "
                "to inject a backend"
            )

        return RestBackend(
            self.host,
            self.auth.access_token.get_secret_value(),
            verify_ssl=self.verify_ssl,
            default_timeout=self.request_timeout,
        )
