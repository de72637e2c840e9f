"""
Tenant registry backed by a directory of YAML profiles.

One file per tenant. Lookups go through a read-only mapping; a reload
parses and validates every file first and then swaps the mapping in a
single assignment, so an in-flight lookup sees either the old set of
profiles or the new one and never a mix.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import yaml
from pydantic import ValidationError

from switchboard.errors import TenantConfigError, TenantNotFound
from switchboard.tenants.profile import TenantProfile
from switchboard.utils import normalize_phone

logger = logging.getLogger(__name__)


def load_profile(path: Path) -> TenantProfile:
    """Parse and validate one tenant YAML file."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise TenantConfigError(f"Cannot read tenant file {path}: {exc}") from exc
    try:
        return TenantProfile.model_validate(data)
    except ValidationError as exc:
        raise TenantConfigError(f"Invalid tenant file {path}: {exc}") from exc


def load_directory(directory: Path) -> list[TenantProfile]:
    """Load every ``*.yaml``/``*.yml`` profile in a directory, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise TenantConfigError(f"Tenant directory not found: {directory}")
    files = sorted(list(directory.glob("*.yaml")) + list(directory.glob("*.yml")))
    return [load_profile(p) for p in files]


class TenantRegistry:
    """Read-mostly lookup of tenant profiles by id and by dialed number."""

    def __init__(self, profiles: Iterable[TenantProfile] = ()) -> None:
        self._profiles: Mapping[str, TenantProfile] = MappingProxyType({})
        self._by_number: Mapping[str, str] = MappingProxyType({})
        self.replace(profiles)

    @classmethod
    def from_directory(cls, directory: Path) -> "TenantRegistry":
        registry = cls(load_directory(directory))
        logger.info("Loaded %d tenant profile(s) from %s", len(registry), directory)
        return registry

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._profiles

    def replace(self, profiles: Iterable[TenantProfile]) -> None:
        """Swap in a complete new set of profiles."""
        by_id: dict[str, TenantProfile] = {}
        by_number: dict[str, str] = {}
        for profile in profiles:
            if profile.tenant_id in by_id:
                raise TenantConfigError(f"Duplicate tenant id: {profile.tenant_id}")
            by_id[profile.tenant_id] = profile
            for number in profile.phone_numbers:
                key = _number_key(number)
                if key in by_number:
                    raise TenantConfigError(
                        f"Number {number} claimed by both {by_number[key]} and {profile.tenant_id}"
                    )
                by_number[key] = profile.tenant_id

        self._profiles, self._by_number = MappingProxyType(by_id), MappingProxyType(by_number)

    def reload(self, directory: Path) -> None:
        profiles = load_directory(directory)
        self.replace(profiles)
        logger.info("Tenant registry reloaded: %d profile(s)", len(profiles))

    def get(self, tenant_id: str) -> TenantProfile:
        try:
            return self._profiles[tenant_id]
        except KeyError:
            raise TenantNotFound(tenant_id) from None

    def for_number(self, dialed: Optional[str]) -> Optional[TenantProfile]:
        if not dialed:
            return None
        tenant_id = self._by_number.get(_number_key(dialed))
        return self._profiles.get(tenant_id) if tenant_id else None

    def all(self) -> list[TenantProfile]:
        return list(self._profiles.values())


def _number_key(number: str) -> str:
    digits = normalize_phone(number).lstrip("+")
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits
