"""
Job Platform Adapters
Uniform search/details/apply contract across the supported job boards.
Supports: LinkedIn (voyager API), InfoJobs, Catho and Indeed (HTML).
"""

from typing import Dict, Type

from autovagas.core.models import Platform

from .base import HttpResponse, PlatformAdapter
from .browser_login import LoginForm, PlaywrightLoginDriver
from .catho import CathoAdapter
from .indeed import IndeedAdapter
from .infojobs import InfoJobsAdapter
from .linkedin import LinkedInAdapter

ADAPTERS: Dict[Platform, Type[PlatformAdapter]] = {
    Platform.LINKEDIN: LinkedInAdapter,
    Platform.INFOJOBS: InfoJobsAdapter,
    Platform.CATHO: CathoAdapter,
    Platform.INDEED: IndeedAdapter,
}


def get_adapter(platform: Platform, session_store, proxy_pool=None, login_driver=None,
                app_config=None) -> PlatformAdapter:
    """Factory function to get the adapter for a platform."""
    adapter_class = ADAPTERS.get(Platform(platform))
    if not adapter_class:
        raise ValueError(f"Unsupported platform: {platform}")
    return adapter_class(session_store, proxy_pool=proxy_pool, login_driver=login_driver,
                         app_config=app_config)


def build_adapters(session_store, proxy_pool=None, login_driver=None,
                   app_config=None) -> Dict[Platform, PlatformAdapter]:
    """One adapter instance per supported platform, sharing collaborators."""
    return {
        platform: get_adapter(platform, session_store, proxy_pool, login_driver, app_config)
        for platform in ADAPTERS
    }


__all__ = [
    "ADAPTERS",
    "CathoAdapter",
    "HttpResponse",
    "IndeedAdapter",
    "InfoJobsAdapter",
    "LinkedInAdapter",
    "LoginForm",
    "PlatformAdapter",
    "PlaywrightLoginDriver",
    "build_adapters",
    "get_adapter",
]
