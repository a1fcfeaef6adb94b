"""Configuration objects and constants for pulling hotlinked images."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple
from urllib.parse import urlsplit

DEFAULT_MAX_IMAGE_SIZE_KB = 3072
DEFAULT_EDIT_GRACE_PERIOD = 300.0
DEFAULT_DOWNLOAD_TIMEOUT = 30.0
DEFAULT_TMP_PREFIX = "hotlinked"


@dataclass
class PullConfig:
    """Site settings consulted while localising remote images."""

    base_url: str
    asset_host: Optional[str] = None
    download_remote_images: bool = True
    max_image_size_kb: int = DEFAULT_MAX_IMAGE_SIZE_KB
    edit_grace_period: float = DEFAULT_EDIT_GRACE_PERIOD
    blacklisted_domains: Tuple[str, ...] = field(default_factory=tuple)
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    max_workers: int = 1
    tmp_prefix: str = DEFAULT_TMP_PREFIX

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_kb * 1024

    @property
    def base_host(self) -> Optional[str]:
        return _hostname_of_setting(self.base_url)

    @property
    def asset_hostname(self) -> Optional[str]:
        return _hostname_of_setting(self.asset_host)

    def should_download_from_domain(self, url: str) -> bool:
        """Return False when the URL's host is (a subdomain of) a blacklisted domain."""
        host = _hostname(url)
        if not host:
            return False
        for domain in self.blacklisted_domains:
            domain = domain.strip().lower().lstrip(".")
            if domain and (host == domain or host.endswith("." + domain)):
                return False
        return True


def _hostname(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def _hostname_of_setting(value: Optional[str]) -> Optional[str]:
    """Hostname of a configured URL, which may be given without a scheme."""
    if not value:
        return None
    if "//" not in value:
        value = "//" + value
    return _hostname(value)
