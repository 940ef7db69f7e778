"""DHIS2 instances: configuration registry and Web API client."""

from .client import AnalyticsResult, Dhis2Client, MetadataNames
from .registry import InstanceDefinition, InstanceRegistry

__all__ = [
    "AnalyticsResult",
    "Dhis2Client",
    "MetadataNames",
    "InstanceDefinition",
    "InstanceRegistry",
]
