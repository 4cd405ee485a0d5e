#
# Docker registry API for python - because the internet failed me!
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
#
# Docker registry API:
# https://docs.docker.com/registry/spec/api/
#

import re
import sys
import base64
from typing import NamedTuple

from Repository import RepositoryV2
from CachedCollection import CachedCollection
from registryrequest import registry_v2_request, registry_v2_paged_request, \
    get_oauth_token_from_basic, get_auth_context
from registryerrors import CatalogFetchFailed, DuplicateRepository, InvalidModeError, \
    RegistryStateMissing

catalog_scope = 'registry:catalog:*'

# Scheme, the /v2 API suffix and a trailing slash are not part of the
# image path
_invalid_image_path_parts = re.compile(r'\w+://|/v2|/$', re.IGNORECASE)


class DockerCredentials(NamedTuple):
    """Service (registry URL), account and secret, as used for docker
    login and for signing requests."""
    service: str
    account: str
    secret: str


class RegistryV2:
    """A registry speaking the docker registry V2 API.

    Example:

       provider = RegistryProvider(JsonStateStore("registries.json"),
                                   KeyringSecretStore())
       token = CancellationToken()

       for reg in await provider.get_registries(False, token):
           for repo in await reg.get_repositories(False, token):
               print("Repo: %s" % repo.name)

               for tag in await repo.get_tags(False, token):
                   manifest = await tag.get_manifest(token)
                   print("  Tag: %s  Digest: %s" % (tag.reference, manifest.digest))

    The objects are cheap and are made anew by the provider on every
    refresh.  The persisted state is

       {"service": URL, "account": user, "monolithRepositories": [...]}

    where monolithRepositories is only present for monolith
    registries.  The secret is kept in the secret store, keyed by
    service and account.

    A monolith registry has a fixed list of repositories and never
    calls _catalog.  That is useful for big public registries where
    you only care about a few repositories, or where _catalog is not
    allowed.

    Authentication starts out as basic auth.  Once a _catalog request
    has been refused with a 401 and a WWW-Authenticate challenge the
    registry switches to OAuth (auth_context is set) and every
    request after that gets a fresh bearer token for its own scope.
    Only the catalog request handles the 401 this way, a tag list or
    manifest request will fail on a 401 if no catalog request came
    first (which is always the case for monolith registries).
    """

    def __init__(self, parent, registry_id):
        self.parent = parent
        self.registry_id = registry_id
        self.state_key = "%s.%s.state" % (parent.provider_id, registry_id)

        # Set by the first 401 challenge on a catalog request, never
        # cleared and never persisted
        self.auth_context = None

        self._repositories = CachedCollection(self.get_repositories_impl)

    def __repr__(self):
        return "<RegistryV2 %s (%s)>" % (self.registry_id, self.parent.provider_id)

    # Settings come from the provider so they survive a refresh

    @property
    def provider_id(self):
        return self.parent.provider_id

    @property
    def verbose(self):
        return self.parent.verbose

    @property
    def debug(self):
        return self.parent.debug

    @property
    def dry_run(self):
        return self.parent.dry_run

    @property
    def max_concurrency(self):
        return self.parent.max_concurrency

    @property
    def state_store(self):
        return self.parent.state_store

    @property
    def secret_store(self):
        return self.parent.secret_store

    @property
    def state(self):
        """The persistent state.  Do not modify, use set_state"""

        state = self.state_store.get(self.state_key)

        if state is None:
            raise RegistryStateMissing(self.state_key)

        return state

    def set_state(self, state):
        self.state_store.update(self.state_key, state)

    @property
    def label(self):
        return self.base_image_path

    @property
    def base_image_path(self):
        return _invalid_image_path_parts.sub('', self.state['service']).lower()

    @property
    def registry_url(self):
        return self.state['service'].rstrip('/')

    @property
    def is_monolith(self):
        return self.state.get('monolithRepositories') is not None

    @classmethod
    def connect(cls, parent, registry_id, credentials, is_monolith=False,
                monolith_repositories=None):
        """Create the persisted state and secret for a new registry
        and return the registry object."""

        if not is_monolith and monolith_repositories is not None:
            raise InvalidModeError('Cannot create a non-monolith registry with monolith repositories.')

        state = {
            'service': credentials.service,
            'account': credentials.account,
        }

        if is_monolith:
            state['monolithRepositories'] = list(monolith_repositories or [])

        registry = cls(parent, registry_id)
        registry.set_state(state)
        registry.secret_store.set_password(credentials.service, credentials.account,
                                           credentials.secret)

        if registry.verbose:
            print("-- Connected registry %s (%s)" % (registry.label, registry_id),
                  file=sys.stderr)

        return registry

    def clear_state(self):
        """Remove the secret and the persisted state"""

        state = self.state
        self.secret_store.delete_password(state['service'], state['account'])
        self.set_state(None)

    def get_docker_login_credentials(self, token=None):
        state = self.state
        secret = self.secret_store.get_password(state['service'], state['account'])

        return DockerCredentials(service=state['service'],
                                 account=state['account'],
                                 secret=secret or '')

    ## Monolith repositories

    def connect_monolith_repository(self, repository_name):
        """For monolith registries, add a repository to the list of
        connected ones.  Refresh get_repositories to see it."""

        if not self.is_monolith:
            raise InvalidModeError('Cannot add monolith repository to non-monolith registry.')

        state = self.state
        if repository_name in state['monolithRepositories']:
            raise DuplicateRepository(repository_name)

        state['monolithRepositories'].append(repository_name)
        self.set_state(state)

        if self.verbose:
            print("-- Added repository %s to %s" % (repository_name, self.label), file=sys.stderr)

    def disconnect_monolith_repository(self, repository_name):
        """For monolith registries, remove a repository from the list
        of connected ones.  The name is matched without regard to
        case."""

        if not self.is_monolith:
            raise InvalidModeError('Cannot remove monolith repository from non-monolith registry.')

        state = self.state
        state['monolithRepositories'] = [r for r in state['monolithRepositories']
                                         if r.lower() != repository_name.lower()]
        self.set_state(state)

        if self.verbose:
            print("-- Removed repository %s from %s" % (repository_name, self.label),
                  file=sys.stderr)

    ## Signing

    async def sign_request(self, headers, scope, token):
        """Put the Authorization header in headers.  With OAuth this
        gets a new token for scope first."""

        if self.auth_context is None:
            self.sign_request_basic(headers)
            return

        oauth_token = await get_oauth_token_from_basic(self, self.auth_context, scope, token)
        headers['Authorization'] = 'Bearer %s' % oauth_token

    def sign_request_basic(self, headers):
        creds = self.get_docker_login_credentials()
        userpass = ("%s:%s" % (creds.account, creds.secret)).encode('utf-8')

        headers['Authorization'] = 'Basic %s' % base64.b64encode(userpass).decode('ascii')

    ## Repositories

    async def get_repositories(self, refresh, token):
        return await self._repositories.get(refresh, token)

    async def get_repositories_impl(self, token):
        """Get the repositories from live data (or from the state for
        monolith registries)"""

        if self.is_monolith:
            return [RepositoryV2(self, r) for r in self.state['monolithRepositories']]

        response = await registry_v2_request('GET', self, '_catalog', catalog_scope, token,
                                             throw_on_failure=False)

        if not response.succeeded and response.status == 401:
            # Try again with OAuth
            auth_context = get_auth_context(response)
            if auth_context is not None:
                self.auth_context = auth_context

                if self.debug:
                    print("--- %s: switching to OAuth, realm %s" %
                          (self.label, auth_context.realm), file=sys.stderr)

            response = await registry_v2_request('GET', self, '_catalog', catalog_scope, token)

        if not response.succeeded:
            raise CatalogFetchFailed(response.status, response.status_text,
                                     response.body.get('errors'))

        response = await registry_v2_paged_request(self, '_catalog', catalog_scope,
                                                   'repositories', token, first=response)

        return [RepositoryV2(self, r) for r in response.body['repositories']]
