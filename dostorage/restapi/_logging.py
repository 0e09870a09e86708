# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
Eliot log events for requests Docker makes to the plugin socket.
"""

from eliot import ActionType, Field

__all__ = [
    "JSON_REQUEST",
    "LOG_SYSTEM",
    "REQUEST",
    ]

LOG_SYSTEM = u"api"


def _text(value):
    return value


METHOD = Field(u"method", _text, u"The HTTP method of the request.")

REQUEST_PATH = Field(
    u"request_path", _text, u"The path of the plugin endpoint requested.")

JSON = Field.forTypes(
    u"json", [str, dict, list, None, bool, float, int],
    u"A decoded request or response body.")

RESPONSE_CODE = Field.forTypes(
    u"code", [int], u"The response code for the request.")


REQUEST = ActionType(
    LOG_SYSTEM + u":request",
    [REQUEST_PATH, METHOD],
    [],
    u"A request was received on the plugin HTTP interface.")

JSON_REQUEST = ActionType(
    LOG_SYSTEM + u":json_request",
    [JSON],
    [RESPONSE_CODE, JSON],
    u"An endpoint was called with the decoded request body.")
