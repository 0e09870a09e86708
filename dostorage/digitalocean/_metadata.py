# -*- test-case-name: dostorage.digitalocean.test.test_metadata -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Finding out which droplet this process runs on.

Every droplet can query a link-local metadata service about itself.
"""

from datetime import timedelta

import requests

from eliot import ActionType, Field

from zope.interface import implementer

from ..common import fixed_retry_steps, retry_if, with_retry
from ..volume import INodeIdentity, RemoteServiceError

METADATA_BASE = u"http://169.254.169.254/metadata/v1/"

# The metadata service is local; it answers quickly or not at all.
METADATA_TIMEOUT = 3

METADATA_ATTEMPTS = 3
METADATA_INTERVAL = timedelta(seconds=1)

GET_METADATA = ActionType(
    u"dostorage:digitalocean:metadata",
    [Field.forTypes(u"path", [str], u"The metadata path queried.")],
    [Field.forTypes(u"response", [str], u"The metadata returned.")],
    u"The droplet metadata service is being queried.",
)


def _unreachable(exception):
    return isinstance(exception, RemoteServiceError) and exception.code is None


@implementer(INodeIdentity)
class DropletMetadata(object):
    """
    ``INodeIdentity`` answered by the droplet metadata service.

    Requests which got no answer at all are retried a few times; an answer
    other than 200 is an error right away.
    """
    def __init__(self, base_url=METADATA_BASE, session=None, sleep=None):
        """
        :param str base_url: The root of the metadata service.
        :param session: A ``requests.Session`` or ``None`` to create one.
        :param sleep: A replacement for ``time.sleep`` or ``None``.
        """
        if session is None:
            session = requests.Session()
        self._base_url = base_url
        self._session = session
        self._get = with_retry(
            self._get_once,
            should_retry=retry_if(_unreachable),
            steps=fixed_retry_steps(METADATA_ATTEMPTS, METADATA_INTERVAL),
            sleep=sleep,
        )

    def _get_once(self, path):
        with GET_METADATA(path=path) as action:
            url = self._base_url + path
            try:
                response = self._session.get(url, timeout=METADATA_TIMEOUT)
            except requests.RequestException as e:
                raise RemoteServiceError(
                    None, u"GET {} failed: {}".format(url, e))
            if response.status_code != 200:
                raise RemoteServiceError(
                    response.status_code,
                    u"Did not get success result from metadata server for "
                    u"path {}".format(path))
            text = response.text.strip()
            action.add_success_fields(response=text)
            return text

    def region(self):
        return self._get(u"region")

    def node_id(self):
        return int(self._get(u"id"))
