# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
The version of dostorage, kept in a module of its own so that ``setup.py``
can read it without importing any dependencies.
"""

__version__ = "0.3.0"
