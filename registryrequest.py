#
# Docker registry V2 request helpers.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# Docker registry API:
# https://docs.docker.com/registry/spec/api/
# Token authentication:
# https://docs.docker.com/registry/spec/auth/token/
#

import re
import sys
import asyncio
from typing import NamedTuple
from urllib.parse import urljoin

import requests

from cancellable import as_cancellable
from registryerrors import RequestFailed, OAuthExchangeFailed


class AuthContext(NamedTuple):
    """Where and for what to get OAuth tokens, from the 401 challenge"""
    realm: str
    service: str


class RegistryV2Response(NamedTuple):
    status: int
    status_text: str
    succeeded: bool
    headers: dict
    body: dict


_realm_re = re.compile(r'realm="([^"]+)"', re.IGNORECASE)
_service_re = re.compile(r'service="([^"]+)"', re.IGNORECASE)


def _succeeded(status):
    return 200 <= status < 300


def _get_link(headers):
    """Get URL from the Link header if rel is "next" and return it.
    Return none if no next link is found.  headers must have lower
    case keys."""

    if 'link' not in headers:
        return None

    links = headers['link'].split(',')
    for link in links:
        if 'rel="next"' in link:
            return link.split('<')[1].split('>')[0]

    return None


def _resolve_url(registry, path):
    """Paths are normally relative to the registry URL (which ends in
    /v2).  Paths starting with / are relative to the server root and
    absolute URLs are used as they are, registries send both kinds in
    pagination links."""

    return urljoin(registry.registry_url + '/', path)


async def _send(method, url, headers, token, data=None):
    # requests blocks, so run it in a worker thread.  If the token is
    # cancelled the thread still runs the request to the end.
    return await as_cancellable(
        asyncio.to_thread(requests.request, method, url, headers=headers, data=data),
        token)


async def registry_v2_request(method, registry, path, scope, token, throw_on_failure=True):
    """Make a signed request to a V2 registry and return a
    RegistryV2Response.

    method is GET, POST or DELETE.  scope is the OAuth scope of the
    request, it is only used if the registry has switched to OAuth.
    If throw_on_failure is False non-2xx responses are returned
    instead of raising RequestFailed.

    The body is the parsed JSON document if the response has a
    non-zero Content-Length, otherwise an empty dict.  A failed
    response with a body that is not JSON also gets an empty dict.
    """

    url = _resolve_url(registry, path)
    headers = {}

    await registry.sign_request(headers, scope, token)
    r = await _send(method, url, headers, token)

    if registry.debug:
        print("--- %s %s: %s %s" % (method, url, r.status_code, r.reason), file=sys.stderr)

    succeeded = _succeeded(r.status_code)

    if throw_on_failure and not succeeded:
        raise RequestFailed(r.status_code, r.reason)

    response_headers = {k.lower(): v for k, v in r.headers.items()}

    body = {}
    length = response_headers.get('content-length')
    if length and int(length) != 0:
        try:
            body = r.json()
        except ValueError:
            # Proxies and some registries answer errors with HTML
            if succeeded:
                raise
            body = {}

    return RegistryV2Response(status=r.status_code,
                              status_text=r.reason,
                              succeeded=succeeded,
                              headers=response_headers,
                              body=body)


async def registry_v2_paged_request(registry, path, scope, tl_key, token,
                                    throw_on_failure=True, first=None):
    """GET a list endpoint and follow the pagination links.

    tl_key is the top level key in the json document that holds the
    list (repositories or tags), the pages are concatenated under it.
    A null list counts as empty.

    If first is given it is used as the already fetched first page.
    If the first page failed (and throw_on_failure is False) it is
    returned as is.  Failures on later pages always raise.
    """

    if first is None:
        first = await registry_v2_request('GET', registry, path, scope, token, throw_on_failure)

    if not first.succeeded:
        return first

    all_data = list(first.body.get(tl_key) or [])
    response = first

    while link := _get_link(response.headers):
        response = await registry_v2_request('GET', registry, link, scope, token)
        all_data.extend(response.body.get(tl_key) or [])

    return first._replace(body={**first.body, tl_key: all_data})


async def get_oauth_token_from_basic(registry, context, scope, token):
    """Exchange basic auth for an OAuth token for a specific scope.
    The request to the realm is itself signed with basic auth."""

    headers = {}
    form = {
        'grant_type': 'password',
        'service': context.service,
        'scope': scope,
    }

    registry.sign_request_basic(headers)
    r = await _send('POST', context.realm, headers, token, data=form)

    if registry.debug:
        print("--- POST %s (%s): %s %s" % (context.realm, scope, r.status_code, r.reason),
              file=sys.stderr)

    if not _succeeded(r.status_code):
        raise OAuthExchangeFailed(r.status_code, r.reason)

    return r.json()['token']


def get_auth_context(response):
    """Get the OAuth context from the WWW-Authenticate header of a 401
    response.  Returns None unless the status is 401 and the header
    has both realm and service."""

    if response is None or response.status != 401:
        return None

    www_auth = (response.headers or {}).get('www-authenticate')
    if not www_auth:
        return None

    realm = _realm_re.search(www_auth)
    service = _service_re.search(www_auth)

    if realm and service:
        return AuthContext(realm=realm.group(1), service=service.group(1))

    return None
