# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Testing utilities for ``dostorage.restapi``.
"""

from json import dumps, loads

from treq.testing import StubTreq

__all__ = ["APIAssertionsMixin"]


class APIAssertionsMixin(object):
    """
    Mixin for ``TestCase`` which issues requests against a Klein application
    entirely in memory.

    Every request is rendered synchronously, so the endpoints under test must
    not rely on a real reactor or thread pool.

    :ivar app: The ``Klein`` application under test.  Set by the test case's
        ``setUp``.
    """
    app = None
    base_url = u"http://dostorage"

    def request(self, method, path, request_body):
        """
        Issue a request and return the response and its decoded body.

        :param bytes method: HTTP method.
        :param bytes path: Absolute path of the resource.
        :param request_body: Object to JSON encode as the request body, or
            ``None`` to send no body.

        :return: A two-tuple of the ``IResponse`` and its body as ``bytes``.
        """
        client = StubTreq(self.app.resource())
        if request_body is None:
            data = None
        else:
            data = dumps(request_body).encode("utf-8")
        requesting = client.request(
            method.decode("ascii"),
            self.base_url + path.decode("ascii"),
            data=data,
            headers={b"content-type": [b"application/json"]},
        )
        client.flush()
        response = self.successResultOf(requesting)
        reading = client.content(response)
        client.flush()
        return response, self.successResultOf(reading)

    def assertResponseCode(self, method, path, request_body, expected_code):
        """
        Make a request and assert the response code is as expected.

        :return: The ``IResponse``.
        """
        response, _ = self.request(method, path, request_body)
        self.assertEqual(expected_code, response.code)
        return response

    def assertResult(self, method, path, request_body,
                     expected_code, expected_result):
        """
        Assert a particular JSON response for the given API request.

        :param expected_code: The code expected in the response.
        :param expected_result: The object the decoded JSON body is expected
            to equal.

        :return: The decoded response body.
        """
        response, body = self.request(method, path, request_body)
        result = loads(body.decode("utf-8"))
        self.assertEqual(
            (expected_code, expected_result), (response.code, result))
        return result
