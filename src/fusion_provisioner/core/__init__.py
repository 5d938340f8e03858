"""Core infrastructure components for Fusion Provisioner."""

from fusion_provisioner.core.address import ImportAddress, decode, encode
from fusion_provisioner.core.client import ApiRequest, ApiResponse, Backend, RestBackend
from fusion_provisioner.core.provider import FusionProvider, TokenAuth

__all__ = [
    "ApiRequest",
    "ApiResponse",
    "Backend",
    "FusionProvider",
    "ImportAddress",
    "RestBackend",
    "TokenAuth",
    "decode",
    "encode",
]
