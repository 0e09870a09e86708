# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
dostorage is a Docker volume plugin which attaches and mounts DigitalOcean
block storage volumes on the droplet it runs on.
"""

from ._version import __version__

# The name under which the plugin registers itself with Docker:
DRIVER_NAME = u"dostorage"


def _redirect_eliot_logs_for_trial():
    """
    Enable Eliot logging to the ``_trial/test.log`` file.

    This wrapper function allows dostorage/_version.py to be imported by
    packaging tools without them having to install all the Eliot
    dependencies.
    """
    import os
    import sys
    if os.path.basename(sys.argv[0]) == "trial":
        from eliot.twisted import redirectLogsForTrial
        redirectLogsForTrial()
_redirect_eliot_logs_for_trial()
del _redirect_eliot_logs_for_trial

__all__ = ["__version__", "DRIVER_NAME"]
