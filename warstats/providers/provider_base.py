#!/usr/bin/env python3
"""
Clan Data Provider Base Interface

Abstract base class for the sources the refresh cycle pulls from. Every
provider returns the live member list as plain dictionaries and war entries
as RawWarRecord values; interpreting them is left to the normalizer and the
week-key resolver.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from warstats.models import RawWarRecord


class ClanDataProvider(ABC):
    """
    Abstract base class for clan data providers.

    Implementations signal failure by raising ProviderError subclasses; a
    provider never returns partial data silently.
    """

    # Demo providers serve generated data instead of the real clan
    is_demo = False

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the provider.

        Args:
            config: Optional configuration dictionary
        """
        self.config = config or {}
        self.logger = logging.getLogger(f"warstats.providers.{self.__class__.__name__}")

    @abstractmethod
    def fetch_members(self) -> List[Dict[str, Any]]:
        """
        Fetch the live clan roster.

        Returns:
            List of member dictionaries with at least 'tag', 'name' and 'role'
        """
        pass

    @abstractmethod
    def fetch_war_log(self) -> List[RawWarRecord]:
        """
        Fetch the historical war log.

        Raises:
            EndpointDisabledError: If the upstream has switched the log off
        """
        pass

    @abstractmethod
    def fetch_current_race(self) -> List[RawWarRecord]:
        """
        Fetch the race in progress as (at most) one undated record.
        """
        pass


class ProviderError(Exception):
    """Base exception for provider errors."""
    pass


class ProviderAPIError(ProviderError):
    """Upstream unavailable: network failure, timeout or non-200 status."""

    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.reason = reason
        self.message = message


class EndpointDisabledError(ProviderAPIError):
    """The historical war-log endpoint is switched off upstream."""
    pass


class ProviderDataError(ProviderError):
    """Response body could not be parsed."""
    pass
