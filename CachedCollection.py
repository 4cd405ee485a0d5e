#
# In-memory cache for a list of registries, repositories or tags.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#


class CachedCollection:
    """A lazily filled list.  The same class is used by the provider
    (registries), a registry (repositories) and a repository (tags).

    fetch is an async function taking a cancellation token and
    returning the fresh list.  The cache is all or nothing: either the
    whole list is there or nothing is.

    Example:

       self._tags = CachedCollection(self.get_tags_impl)
       ...
       tags = await self._tags.get(refresh, token)

    Two concurrent get() calls on an empty cache will both fetch, and
    the last one to finish is what stays in the cache.
    """

    def __init__(self, fetch):
        self._fetch = fetch
        self._items = None

    @property
    def is_populated(self):
        return self._items is not None

    async def get(self, refresh, token):
        """Return the cached list, fetching it first if refresh is
        True or nothing is cached."""

        if refresh:
            self._items = None

        if self._items is None:
            self._items = list(await self._fetch(token))

        return self._items

    def clear(self):
        self._items = None

    def append(self, item):
        """Add item to the list, but only if the list is populated.  An
        empty cache stays empty so the next get() fetches everything."""

        if self._items is not None:
            self._items.append(item)

    def remove_if(self, predicate):
        """Remove the cached items matching predicate, if populated"""

        if self._items is not None:
            self._items = [i for i in self._items if not predicate(i)]
