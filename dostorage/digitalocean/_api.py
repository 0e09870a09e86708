# -*- test-case-name: dostorage.digitalocean.test.test_api -*-
# Copyright ClusterHQ Inc.  See LICENSE file for details.

"""
A DigitalOcean block storage client.

See https://developers.digitalocean.com/documentation/v2/ for the API.
"""

import requests

from eliot import ActionType, Field, MessageType

from pyrsistent import pvector

from twisted.python.reflect import safe_repr

from zope.interface import implementer

from ..volume import IRemoteVolumeService, RemoteServiceError, RemoteVolume

API_BASE = u"https://api.digitalocean.com/v2"

# The largest page the volume listing accepts.
PER_PAGE = 200

# Seconds to wait for the API to answer a single request.
REQUEST_TIMEOUT = 30

METHOD = Field.forTypes(u"method", [str], u"The HTTP method of a request.")

URL = Field.forTypes(u"url", [str], u"The URL a request was sent to.")

STATUS_CODE = Field.forTypes(
    u"status_code", [int], u"The HTTP status code of a response.")

REGION = Field.forTypes(u"region", [str], u"A region slug.")

VOLUME_NAME = Field.forTypes(u"volume_name", [str], u"A volume name.")

VOLUME_ID = Field.forTypes(
    u"volume_id", [str], u"The identifier of a DigitalOcean volume.")

DROPLET_ID = Field.forTypes(
    u"droplet_id", [int], u"The identifier of a droplet.")

ACTION_TYPE = Field.forTypes(
    u"type", [str], u"The kind of a volume action, attach or detach.")

ACTION_ID = Field.forTypes(
    u"action_id", [int], u"The identifier of a volume action.")

REASON = Field(u"reason", safe_repr, u"Why something failed.")

REQUEST = ActionType(
    u"dostorage:digitalocean:request",
    [METHOD, URL],
    [STATUS_CODE],
    u"A request to the DigitalOcean API.",
)

FIND_VOLUME = ActionType(
    u"dostorage:digitalocean:find_volume",
    [REGION, VOLUME_NAME],
    [],
    u"Volumes are being listed to find one by region and name.",
)

START_ACTION = ActionType(
    u"dostorage:digitalocean:start_action",
    [VOLUME_ID, DROPLET_ID, ACTION_TYPE],
    [ACTION_ID],
    u"An attach or detach action is being requested.",
)

ATTACHMENT_QUERY_FAILED = MessageType(
    u"dostorage:digitalocean:attachment_query_failed",
    [VOLUME_ID, DROPLET_ID, REASON],
    u"Whether a volume is attached to a droplet could not be determined, "
    u"so it is assumed not to be.",
)


def _error_message(response):
    """
    :return: The human readable part of an API error response.
    """
    try:
        return response.json()[u"message"]
    except (ValueError, KeyError, TypeError):
        return response.text or response.reason


def _volume_from_json(data):
    """
    :param dict data: A volume as represented by the API.

    :return: The equivalent ``RemoteVolume``.
    """
    try:
        return RemoteVolume(
            volume_id=data[u"id"],
            name=data[u"name"],
            region=data[u"region"][u"slug"],
            node_ids=pvector(data.get(u"droplet_ids") or []),
        )
    except (KeyError, TypeError) as e:
        raise RemoteServiceError(
            None, u"unexpected volume representation: {}".format(
                safe_repr(e)))


@implementer(IRemoteVolumeService)
class DigitalOceanVolumeService(object):
    """
    ``IRemoteVolumeService`` backed by the DigitalOcean API.

    :ivar _session: The ``requests.Session`` used for every request.
    :ivar str _base_url: The API root, without a trailing slash.
    """
    def __init__(self, access_token, session=None, base_url=API_BASE):
        """
        :param str access_token: A personal access token with write scope.
        :param session: A ``requests.Session`` or ``None`` to create one.
        :param str base_url: The API root.
        """
        if session is None:
            session = requests.Session()
        session.headers.update({
            u"Authorization": u"Bearer {}".format(access_token),
            u"Content-Type": u"application/json",
        })
        self._session = session
        self._base_url = base_url.rstrip(u"/")

    def _url(self, *segments):
        return u"/".join((self._base_url,) + tuple(
            u"{}".format(segment) for segment in segments))

    def _request(self, method, url, params=None, body=None):
        """
        Send a request and decode the JSON response.

        :raise RemoteServiceError: If no response was received, the response
            was not a success or its body was not JSON.

        :return: The decoded body.
        """
        with REQUEST(method=method, url=url) as action:
            try:
                response = self._session.request(
                    method, url, params=params, json=body,
                    timeout=REQUEST_TIMEOUT,
                )
            except requests.RequestException as e:
                raise RemoteServiceError(
                    None, u"{} {} failed: {}".format(method, url, e))
            if not 200 <= response.status_code < 300:
                raise RemoteServiceError(
                    response.status_code, _error_message(response))
            try:
                result = response.json()
            except ValueError:
                raise RemoteServiceError(
                    response.status_code,
                    u"the response of {} {} is not JSON".format(method, url))
            action.add_success_fields(status_code=response.status_code)
            return result

    def find_by_region_and_name(self, region, name):
        with FIND_VOLUME(region=region, volume_name=name):
            url = self._url(u"volumes")
            params = {u"region": region, u"name": name, u"per_page": PER_PAGE}
            while url:
                page = self._request(u"GET", url, params=params)
                for data in page.get(u"volumes", []):
                    volume = _volume_from_json(data)
                    if (volume.region, volume.name) == (region, name):
                        return volume
                # The next page link carries the query itself.
                url = page.get(u"links", {}).get(u"pages", {}).get(u"next")
                params = None
            return None

    def get_by_id(self, volume_id):
        body = self._request(u"GET", self._url(u"volumes", volume_id))
        return _volume_from_json(body.get(u"volume"))

    def is_attached_to(self, volume_id, node_id):
        try:
            volume = self.get_by_id(volume_id)
        except RemoteServiceError as e:
            ATTACHMENT_QUERY_FAILED.log(
                volume_id=volume_id, droplet_id=node_id, reason=e)
            return False
        return node_id in volume.node_ids

    def _start(self, action_type, volume_id, node_id):
        with START_ACTION(volume_id=volume_id, droplet_id=node_id,
                          type=action_type) as action:
            body = self._request(
                u"POST", self._url(u"volumes", volume_id, u"actions"),
                body={u"type": action_type, u"droplet_id": node_id},
            )
            try:
                action_id = body[u"action"][u"id"]
            except (KeyError, TypeError):
                raise RemoteServiceError(
                    None, u"the response does not identify the action")
            action.add_success_fields(action_id=action_id)
            return action_id

    def start_attach(self, volume_id, node_id):
        return self._start(u"attach", volume_id, node_id)

    def start_detach(self, volume_id, node_id):
        return self._start(u"detach", volume_id, node_id)

    def poll_action(self, volume_id, action_id):
        body = self._request(
            u"GET",
            self._url(u"volumes", volume_id, u"actions", action_id),
        )
        try:
            return body[u"action"][u"status"]
        except (KeyError, TypeError):
            raise RemoteServiceError(
                None, u"the response does not carry the action status")
