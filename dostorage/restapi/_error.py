# Copyright ClusterHQ Inc.  See LICENSE file for details.
"""
Request errors that are answered directly rather than logged as incidents.
"""

from eliot import register_exception_extractor

from twisted.web.http import BAD_REQUEST

__all__ = [
    "BadRequest", "InvalidRequestJSON", "make_bad_request",

    "DECODING_ERROR_DESCRIPTION", "DECODING_ERROR",
    ]


class BadRequest(Exception):
    """
    Raised by an endpoint to answer with ``result`` as the JSON body and
    ``code`` as the response code.

    :ivar int code: The HTTP response code.
    :ivar result: The JSON-encodable response body.
    """
    def __init__(self, code, result):
        Exception.__init__(self, code, result)
        self.code = code
        self.result = result


register_exception_extractor(BadRequest, lambda e: {u"code": e.code})


def make_bad_request(code=BAD_REQUEST, **result):
    """
    :return: A ``BadRequest`` whose body is the keyword arguments.
    """
    return BadRequest(code, result)


DECODING_ERROR_DESCRIPTION = u"The request body could not be decoded as JSON."

DECODING_ERROR = make_bad_request(description=DECODING_ERROR_DESCRIPTION)


class InvalidRequestJSON(BadRequest):
    """
    The request body is JSON but does not match the endpoint's input schema.
    """
    description = u"The provided JSON doesn't match the required schema."

    def __init__(self, errors, schema):
        BadRequest.__init__(
            self, BAD_REQUEST,
            {u"description": self.description, u"errors": errors})
        self.schema = schema
