# providers/__init__.py
# Vaultline – Provider registry; importing this package registers the built-in providers

from .provider import Provider, TimelineCategory, PROVIDERS, register_provider, get_provider
from .github import GITHUB, GitHubCategory

__all__ = [
    "Provider",
    "TimelineCategory",
    "PROVIDERS",
    "register_provider",
    "get_provider",
    "GITHUB",
    "GitHubCategory",
]
