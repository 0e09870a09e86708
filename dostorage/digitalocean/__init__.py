# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
DigitalOcean implementations of the remote collaborators of the volume
lifecycle.
"""

from ._api import API_BASE, PER_PAGE, DigitalOceanVolumeService
from ._metadata import METADATA_BASE, DropletMetadata

__all__ = [
    "API_BASE", "PER_PAGE", "DigitalOceanVolumeService",
    "METADATA_BASE", "DropletMetadata",
]
