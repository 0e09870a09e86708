# Copyright ClusterHQ Inc.  See LICENSE file for details.
"""
This module implements tools for exposing Python methods as API endpoints.
"""

__all__ = [
    "EndpointResponse", "structured",
    ]

from functools import wraps

from json import loads, dumps

from twisted.internet.defer import maybeDeferred
from twisted.web.http import OK, INTERNAL_SERVER_ERROR

from eliot import writeFailure
from eliot.twisted import DeferredContext

from ._error import DECODING_ERROR, BadRequest, InvalidRequestJSON
from ._logging import REQUEST, JSON_REQUEST
from ._schema import getValidator


class EndpointResponse(object):
    """
    An endpoint can return an ``EndpointResponse`` instance to return a custom
    response code to the client along with a successful response body.
    """
    def __init__(self, code, result):
        """
        :param int code: The HTTP response code to set in the response.
        :param result: The (structured) value to put into the response
            body.  This must be JSON encodeable.
        """
        self.code = code
        self.result = result


def _get_logger(self):
    """
    Find the specific ``Logger`` of an application, if it has one.

    :return: A ``Logger`` object or ``None`` for the default one.
    """
    return getattr(self, "logger", None)


def _encode(result):
    return dumps(result).encode("utf-8")


def _logging(original):
    """
    Decorate a method which implements an API endpoint to add Eliot-based
    logging.

    Calls to the decorated function will be in a ``REQUEST`` action.  If the
    decorated function raises an exception then the exception will be logged
    and a token which identifies that log event sent in the response.
    """
    @wraps(original)
    def logger(self, request, **routeArguments):
        logger = _get_logger(self)

        action = REQUEST(logger,
                         request_path=request.path.decode("ascii", "replace"),
                         method=request.method.decode("ascii", "replace"))

        # A serialized action context that uniquely identifies a position
        # within the logs:
        incidentIdentifier = action.serialize_task_id().decode("ascii")

        with action.context():
            d = DeferredContext(original(self, request, **routeArguments))

        def failure(reason):
            if reason.check(BadRequest):
                code = reason.value.code
                result = reason.value.result
            else:
                writeFailure(reason, logger)
                code = INTERNAL_SERVER_ERROR
                result = incidentIdentifier
            request.setResponseCode(code)
            request.responseHeaders.setRawHeaders(
                b"content-type", [b"application/json"])
            return _encode(result)
        d.addErrback(failure)
        d.addActionFinish()
        return d.result

    return logger


def _serialize(outputValidator):
    """
    Decorate a function so that its return value is automatically JSON encoded
    into a structure indicating a successful result.

    :param outputValidator: A ``jsonschema`` validator for the returned JSON.

    :return: A decorator that decorates a function with the signature
        of a Klein route endpoint that may return a Deferred.
    """
    def deco(original):
        def success(result, request):
            code = OK
            if isinstance(result, EndpointResponse):
                code = result.code
                result = result.result
            outputValidator.validate(result)
            request.responseHeaders.setRawHeaders(
                b"content-type", [b"application/json"])
            request.setResponseCode(code)
            return _encode(result)

        def doit(self, request, **routeArguments):
            result = maybeDeferred(original, self, request, **routeArguments)
            result.addCallback(success, request)
            return result

        return doit
    return deco


def _decode_body(request):
    """
    Decode the JSON request body.

    Docker labels its requests with a vendor specific content type (or none
    at all) so the content type is not checked.  An empty body or a JSON
    ``null`` is treated as an empty object.
    """
    body = request.content.read()
    if not body.strip():
        return {}
    try:
        objects = loads(body.decode("utf-8"))
    except ValueError:
        raise DECODING_ERROR
    if objects is None:
        return {}
    return objects


def structured(inputSchema, outputSchema, ignore_body=False):
    """
    Decorate a Klein-style endpoint method so that the request body is
    automatically decoded and the response body is automatically encoded.

    Items in the object encoded in the request body will be passed to
    ``original`` as keyword arguments.  For example::

        {"Name": "db01"}

    If this request body is received it will be as if the decorated function
    were called like::

        original(Name="db01")

    The encoded form of the object returned by ``original`` will define the
    response body.

    :param inputSchema: JSON Schema describing the request body.
    :param outputSchema: JSON Schema describing the response body.
    :param bool ignore_body: If true, the request body is not read at all and
        the endpoint is called with no arguments from it.
    """
    inputValidator = getValidator(inputSchema)
    outputValidator = getValidator(outputSchema)

    def deco(original):
        @wraps(original)
        @_logging
        @_serialize(outputValidator)
        def loadAndDispatch(self, request, **routeArguments):
            if ignore_body:
                objects = {}
            else:
                objects = _decode_body(request)
                errors = [
                    error.message
                    for error in inputValidator.iter_errors(objects)
                ]
                if errors:
                    raise InvalidRequestJSON(errors=errors, schema=inputSchema)

            eliot_action = JSON_REQUEST(_get_logger(self), json=objects.copy())
            with eliot_action.context():
                objects.update(routeArguments)

                d = DeferredContext(maybeDeferred(original, self, **objects))

                def got_result(result):
                    code = OK
                    json = result
                    if isinstance(result, EndpointResponse):
                        code = result.code
                        json = result.result
                    eliot_action.add_success_fields(code=code, json=json)
                    return result
                d.addCallback(got_result)
                d.addActionFinish()
                return d.result

        loadAndDispatch.inputSchema = inputSchema
        loadAndDispatch.outputSchema = outputSchema
        return loadAndDispatch
    return deco
