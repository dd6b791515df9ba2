# provider.py
# Vaultline – Provider configuration contract and registry

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Type

from vaultline.parse import IgnoreRule, MetadataRule, ProfileRule, TimelineRule


@dataclass(frozen=True)
class TimelineCategory:
    char: str  # single-character identifier
    icon: str
    display_name: str
    default_enabled: bool = True


@dataclass
class Provider:
    """
    Everything the core needs to know about one data-export source.

    The rule tables are ordered: the first matching glob wins within each
    table. `category_type`, when set, re-types categories read back from
    the store (they are stored by value).
    """
    slug: str
    display_name: str
    categories: Dict[object, TimelineCategory] = field(default_factory=dict)
    ignore: List[IgnoreRule] = field(default_factory=list)
    metadata: List[MetadataRule] = field(default_factory=list)
    timeline: List[TimelineRule] = field(default_factory=list)
    profile: Optional[ProfileRule] = None
    category_type: Optional[Type[Enum]] = None


PROVIDERS: Dict[str, Provider] = {}


def register_provider(provider: Provider) -> Provider:
    if provider.slug in PROVIDERS:
        raise ValueError(f"Provider already registered: {provider.slug}")
    PROVIDERS[provider.slug] = provider
    return provider


def get_provider(slug: str) -> Provider:
    try:
        return PROVIDERS[slug]
    except KeyError:
        known = ", ".join(sorted(PROVIDERS)) or "none"
        raise KeyError(f"Unknown provider: {slug!r} (known: {known})") from None
