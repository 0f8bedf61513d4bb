"""Source discovery and eligibility filtering."""

from coderag.index._internal.discovery.eligibility import EligibilityFilter, find_unsupported_syntax
from coderag.index._internal.discovery.scanner import DiscoveryResult, SourceDiscovery

__all__ = [
    "DiscoveryResult",
    "EligibilityFilter",
    "SourceDiscovery",
    "find_unsupported_syntax",
]
