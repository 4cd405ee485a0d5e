#
# The set of connected registries.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#

import sys
import secrets

from Registry import RegistryV2
from CachedCollection import CachedCollection
from registryerrors import ForeignRegistry


def get_random_registry_id(length=8):
    """Random hex string, used to key the persisted registry state"""
    return secrets.token_hex((length + 1) // 2)[:length]


class RegistryProvider:
    """Keeps track of the connected registries.

    The list of registry IDs is persisted in state_store under
    "<provider_id>.registries", each registry keeps its own state under
    "<provider_id>.<registry_id>.state".  Secrets go to secret_store.

    The provider also carries the settings the registries, repositories
    and tags read through their parents:

    - verbose: say what is being changed (deletes, connects, ...)
    - debug: print every HTTP request
    - dry_run: don't actually delete manifests, just say so
    - max_concurrency: max number of manifest requests in flight when
      listing or deleting the tags of a repository, None for no limit
    """

    label = 'Generic Registry V2'

    def __init__(self, state_store, secret_store, provider_id='GenericV2',
                 registry_class=RegistryV2):
        self.state_store = state_store
        self.secret_store = secret_store
        self.provider_id = provider_id
        self.registry_class = registry_class

        self.verbose = False
        self.debug = False
        self.dry_run = False
        self.max_concurrency = None

        self._registries = CachedCollection(self.get_registries_impl)

    @property
    def registries_key(self):
        return "%s.registries" % self.provider_id

    @property
    def registry_ids(self):
        return list(self.state_store.get(self.registries_key) or [])

    def set_registry_ids(self, registry_ids):
        # An empty list is removed rather than stored
        self.state_store.update(self.registries_key, registry_ids or None)

    async def get_registries(self, refresh, token):
        """The connected registries.  Without refresh the same objects
        are returned every time, with refresh they are all made anew
        (and lose e.g. their OAuth context)."""

        return await self._registries.get(refresh, token)

    async def get_registries_impl(self, token):
        return [self.registry_class(self, r) for r in self.registry_ids]

    async def connect_registry(self, token, *args, **kwargs):
        """Connect a new registry.  The arguments after token are
        passed on to connect_registry_impl."""

        registry_ids = self.registry_ids

        registry_id = get_random_registry_id()
        while registry_id in registry_ids:
            registry_id = get_random_registry_id()

        registry = await self.connect_registry_impl(registry_id, token, *args, **kwargs)

        self.set_registry_ids(registry_ids + [registry.registry_id])
        self._registries.append(registry)

        return registry

    async def connect_registry_impl(self, registry_id, token, credentials, is_monolith=False,
                                    monolith_repositories=None):
        return self.registry_class.connect(self, registry_id, credentials,
                                           is_monolith=is_monolith,
                                           monolith_repositories=monolith_repositories)

    async def disconnect_registry(self, registry):
        """Forget a registry: its ID, its state and its secret"""

        if registry.provider_id != self.provider_id:
            raise ForeignRegistry(registry.registry_id, self.provider_id)

        self.set_registry_ids([r for r in self.registry_ids if r != registry.registry_id])
        registry.clear_state()
        self._registries.remove_if(lambda r: r.registry_id == registry.registry_id)

        if self.verbose:
            print("-- Disconnected registry %s" % registry.registry_id, file=sys.stderr)
