"""
Video provider registry.

Jobs record the provider that issued their id; the poller resolves the
status adapter from that name.
"""

from typing import Optional, Protocol

from .errors import ProviderError
from .luma import LumaClient
from .models import ProviderStatus
from .replicate import ReplicateClient


class VideoProvider(Protocol):
    name: str

    async def create(
        self,
        prompt: str,
        image_url: Optional[str] = None,
        duration: Optional[str] = None,
        end_image_url: Optional[str] = None,
    ) -> str:
        ...

    async def fetch_status(self, job_id: str) -> ProviderStatus:
        ...


class ProviderFactory:
    def __init__(self, providers: Optional[dict[str, VideoProvider]] = None):
        if providers is None:
            providers = {"luma": LumaClient(), "replicate": ReplicateClient()}
        self._providers = dict(providers)

    def get_provider(self, name: str) -> VideoProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise ProviderError(f"Unknown provider '{name}'", provider=name) from None

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)
