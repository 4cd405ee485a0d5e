#
# A repository in a docker V2 registry.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#

from Tag import TagV2
from cancellable import fan_out
from CachedCollection import CachedCollection
from registryrequest import registry_v2_paged_request


class RepositoryV2:
    """A repository: a name in a registry.  Nothing about it is
    persisted, the tags are read from the registry."""

    def __init__(self, parent, name):
        self.parent = parent
        self.name = name
        self._tags = CachedCollection(self.get_tags_impl)

    def __repr__(self):
        return "<RepositoryV2 %s in %s>" % (self.name, self.parent.registry_id)

    @property
    def label(self):
        return self.name

    async def get_tags(self, refresh, token):
        return await self._tags.get(refresh, token)

    async def get_tags_impl(self, token):
        """Get the tags from the registry, and the manifest of every
        tag.  The manifests are fetched at the same time so the caller
        has digests and creation times without more waiting."""

        response = await registry_v2_paged_request(self.parent, "%s/tags/list" % self.name,
                                                   "repository:%s:pull" % self.name,
                                                   'tags', token)

        tags = [TagV2(self, t) for t in response.body['tags']]
        await fan_out([t.get_manifest(token) for t in tags], self.parent.max_concurrency)

        return tags

    async def delete(self, token):
        """Delete the repository by deleting all its tags.  The API has
        no way to delete a repository as such."""

        tags = await self.get_tags(True, token)
        await fan_out([t.delete(token) for t in tags], self.parent.max_concurrency)

        self._tags.clear()

    def disconnect_monolith_repository(self):
        """Remove this repository from the parent monolith registry"""
        self.parent.disconnect_monolith_repository(self.name)
