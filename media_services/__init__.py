"""
Client for Media Services accounts.

The logical service URI is resolved to the account's API endpoint once, when
the context factory is built; every data context it creates afterwards talks
to that endpoint with credentials and the API version attached.
"""

from media_services.client import MediaServicesClient
from media_services.context import DataServiceContext, MediaDataServiceContext, MergeOption
from media_services.factory import MediaServicesContextFactory

__all__ = [
    "DataServiceContext",
    "MediaDataServiceContext",
    "MediaServicesClient",
    "MediaServicesContextFactory",
    "MergeOption",
]
