# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
A stand-in for ``requests.Session`` for testing the DigitalOcean clients.
"""

import json


class FakeResponse(object):
    """
    Enough of ``requests.Response`` for the DigitalOcean clients.
    """
    def __init__(self, status_code, body=None, text=None, reason=u"Reason"):
        self.status_code = status_code
        self.reason = reason
        if text is None:
            text = u"" if body is None else json.dumps(body)
        self.text = text

    def json(self):
        return json.loads(self.text)


class FakeSession(object):
    """
    Record requests and answer them with queued responses.

    :ivar dict headers: Headers set on the session.
    :ivar list requests: ``(method, url, params, json)`` of every request.
    :ivar list responses: ``FakeResponse`` instances or exceptions to raise,
        used up in order.
    """
    def __init__(self, responses=()):
        self.headers = {}
        self.requests = []
        self.timeouts = []
        self.responses = list(responses)

    def request(self, method, url, params=None, json=None, timeout=None):
        self.requests.append((method, url, params, json))
        self.timeouts.append(timeout)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, timeout=None):
        return self.request(u"GET", url, timeout=timeout)


def volume_json(volume_id=u"vol-123", name=u"db01", region=u"nyc1",
                droplet_ids=()):
    """
    :return: A volume as represented by the DigitalOcean API.
    """
    return {
        u"id": volume_id,
        u"name": name,
        u"region": {u"slug": region, u"name": u"New York 1"},
        u"droplet_ids": list(droplet_ids),
        u"size_gigabytes": 10,
    }
