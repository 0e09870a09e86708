# Copyright ClusterHQ Inc.  See LICENSE file for details.
"""
Tests for ``dostorage.restapi._infrastructure``.
"""

from jsonschema.exceptions import ValidationError
from klein import Klein
from treq.testing import StubTreq

from twisted.internet.defer import fail, succeed
from twisted.web.http import (
    BAD_REQUEST, INTERNAL_SERVER_ERROR, OK, PAYMENT_REQUIRED,
)

from eliot.testing import (
    LoggedAction, assertContainsFields, capture_logging,
)

from .. import structured, EndpointResponse, make_bad_request
from .._error import DECODING_ERROR_DESCRIPTION, InvalidRequestJSON
from .._logging import REQUEST, JSON_REQUEST
from ..testtools import APIAssertionsMixin
from ...testtools import CustomException, TestCase


NAME_SCHEMA = {
    u"type": u"object",
    u"properties": {u"Name": {u"type": u"string"}},
    u"required": [u"Name"],
}

ANY_OBJECT = {u"type": u"object"}

ERR_SCHEMA = {
    u"type": u"object",
    u"properties": {u"Err": {u"type": u"string"}},
    u"required": [u"Err"],
}


class _Application(object):
    """
    A small application exercising the various ``structured`` behaviours.

    :ivar calls: The keyword arguments of every call to ``echo``.
    """
    app = Klein()

    def __init__(self):
        self.calls = []

    @app.route("/echo", methods=["POST"])
    @structured(NAME_SCHEMA, ANY_OBJECT)
    def echo(self, **kwargs):
        self.calls.append(kwargs)
        return kwargs

    @app.route("/optional", methods=["POST"])
    @structured(ANY_OBJECT, ANY_OBJECT)
    def optional(self, **kwargs):
        self.calls.append(kwargs)
        return {u"Arguments": sorted(kwargs)}

    @app.route("/ignored", methods=["POST"])
    @structured(NAME_SCHEMA, ANY_OBJECT, ignore_body=True)
    def ignored(self):
        return {u"Implements": [u"Something"]}

    @app.route("/deferred", methods=["POST"])
    @structured(ANY_OBJECT, ERR_SCHEMA)
    def deferred(self):
        return succeed({u"Err": u""})

    @app.route("/explicit", methods=["POST"])
    @structured(ANY_OBJECT, ANY_OBJECT)
    def explicit(self):
        return EndpointResponse(PAYMENT_REQUIRED, {u"Pay": u"up"})

    @app.route("/bad-output", methods=["POST"])
    @structured(ANY_OBJECT, ERR_SCHEMA)
    def bad_output(self):
        return {u"Err": 123}

    @app.route("/bad-request", methods=["POST"])
    @structured(ANY_OBJECT, ANY_OBJECT)
    def bad_request(self):
        raise make_bad_request(code=423, Err=u"no good")

    @app.route("/exploding", methods=["POST"])
    @structured(ANY_OBJECT, ANY_OBJECT)
    def exploding(self):
        return fail(CustomException(u"kaboom"))


class StructuredTests(APIAssertionsMixin, TestCase):
    """
    Tests for ``structured``.
    """
    def setUp(self):
        super(StructuredTests, self).setUp()
        self.application = _Application()
        self.app = self.application.app

    def test_decode_and_encode(self):
        """
        The members of the JSON request body are passed to the endpoint as
        keyword arguments and its return value is JSON encoded into the
        response body.
        """
        self.assertResult(
            b"POST", b"/echo", {u"Name": u"db01"}, OK, {u"Name": u"db01"})
        self.assertEqual([{u"Name": u"db01"}], self.application.calls)

    def test_empty_body(self):
        """
        An empty request body is treated as an empty JSON object.
        """
        self.assertResult(
            b"POST", b"/optional", None, OK, {u"Arguments": []})

    def test_null_body(self):
        """
        A JSON ``null`` request body is treated as an empty JSON object.
        """
        response, body = self._raw_request(b"/optional", b"null")
        self.assertEqual(
            (OK, b'{"Arguments": []}'), (response.code, body))

    def test_ignored_body(self):
        """
        With ``ignore_body`` the request body is neither decoded nor
        validated.
        """
        self.assertResult(
            b"POST", b"/ignored", 12345, OK,
            {u"Implements": [u"Something"]})

    def test_deferred_result(self):
        """
        An endpoint may return a ``Deferred`` which fires with the result.
        """
        self.assertResult(b"POST", b"/deferred", {}, OK, {u"Err": u""})

    def test_explicit_response(self):
        """
        An ``EndpointResponse`` sets the response code of a successful
        result.
        """
        self.assertResult(
            b"POST", b"/explicit", {}, PAYMENT_REQUIRED, {u"Pay": u"up"})

    def test_malformed_request(self):
        """
        A body which is not JSON results in a ``BAD_REQUEST`` response.
        """
        response, body = self._raw_request(b"/echo", b"{not json")
        self.assertEqual(BAD_REQUEST, response.code)
        self.assertIn(DECODING_ERROR_DESCRIPTION, body.decode("utf-8"))
        self.assertEqual([], self.application.calls)

    def _raw_request(self, path, raw_body):
        client = StubTreq(self.app.resource())
        requesting = client.post(
            self.base_url + path.decode("ascii"), data=raw_body)
        client.flush()
        response = self.successResultOf(requesting)
        reading = client.content(response)
        client.flush()
        return response, self.successResultOf(reading)

    def test_validation_error(self):
        """
        A body which does not match the input schema results in a
        ``BAD_REQUEST`` response listing the problems.
        """
        self.assertResult(
            b"POST", b"/echo", {u"Name": 5}, BAD_REQUEST,
            {u"description": InvalidRequestJSON.description,
             u"errors": [u"5 is not of type 'string'"]})
        self.assertEqual([], self.application.calls)

    def test_bad_request_raised(self):
        """
        A ``BadRequest`` raised by the endpoint determines the response code
        and body.
        """
        self.assertResult(
            b"POST", b"/bad-request", {}, 423, {u"Err": u"no good"})

    @capture_logging(
        lambda self, logger: self.assertEqual(
            1, len(logger.flushTracebacks(CustomException))))
    def test_internal_server_error(self, logger):
        """
        An unexpected exception results in an ``INTERNAL_SERVER_ERROR``
        response and the traceback is logged.
        """
        self.assertResponseCode(
            b"POST", b"/exploding", {}, INTERNAL_SERVER_ERROR)

    @capture_logging(
        lambda self, logger: self.assertEqual(
            1, len(logger.flushTracebacks(ValidationError))))
    def test_response_validation_error(self, logger):
        """
        A result which does not match the output schema is treated as an
        internal error.
        """
        self.assertResponseCode(
            b"POST", b"/bad-output", {}, INTERNAL_SERVER_ERROR)

    @capture_logging(None)
    def test_request_logged(self, logger):
        """
        Every request is logged as a ``REQUEST`` action containing a
        ``JSON_REQUEST`` action with the decoded body and the response code.
        """
        self.assertResult(
            b"POST", b"/echo", {u"Name": u"db01"}, OK, {u"Name": u"db01"})
        [request] = LoggedAction.ofType(logger.messages, REQUEST)
        assertContainsFields(self, request.startMessage, {
            u"request_path": u"/echo",
            u"method": u"POST",
        })
        [json_request] = LoggedAction.ofType(logger.messages, JSON_REQUEST)
        assertContainsFields(self, json_request.startMessage, {
            u"json": {u"Name": u"db01"},
        })
        assertContainsFields(self, json_request.endMessage, {
            u"code": OK,
            u"json": {u"Name": u"db01"},
        })
        self.assertEqual(
            request.startMessage[u"task_uuid"],
            json_request.startMessage[u"task_uuid"])
