#
# A tag in a docker V2 registry.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#

import sys
import json
from typing import NamedTuple, Optional

from registryrequest import registry_v2_request
from registryerrors import ManifestUnreadable, ManifestNotFound


class Manifest(NamedTuple):
    digest: str
    created: Optional[str] = None


class TagV2:
    """A tag (name or digest) in a repository.  The manifest is read
    once and kept for the lifetime of the object, a manifest does not
    change for a given reference."""

    def __init__(self, parent, reference):
        self.parent = parent
        self.reference = reference
        self._manifest = None

    def __repr__(self):
        return "<TagV2 %s:%s>" % (self.parent.name, self.reference)

    @property
    def registry(self):
        return self.parent.parent

    @property
    def label(self):
        return self.reference

    @property
    def manifest(self):
        """The manifest, or None if get_manifest has not been called"""
        return self._manifest

    @property
    def description(self):
        if self._manifest is None or self._manifest.created is None:
            return ''
        return self._manifest.created

    async def get_manifest(self, token):
        """Get the digest and creation time of the tag.

        The digest comes from the Docker-Content-Digest header, the
        creation time from the v1Compatibility blob in the manifest
        history.  Raises ManifestUnreadable if there is no such blob or
        the history is not a list of objects.
        """

        if self._manifest is None:
            name = self.parent.name
            response = await registry_v2_request('GET', self.registry,
                                                 "%s/manifests/%s" % (name, self.reference),
                                                 "repository:%s:pull" % name, token)

            history = response.body.get('history') or [{}]
            v1_body_string = None
            if isinstance(history, list) and isinstance(history[0], dict):
                v1_body_string = history[0].get('v1Compatibility')

            if not v1_body_string:
                raise ManifestUnreadable(self.reference)

            v1_body = json.loads(v1_body_string)

            self._manifest = Manifest(digest=response.headers.get('docker-content-digest'),
                                      created=v1_body.get('created'))

        return self._manifest

    async def delete(self, token):
        """Delete the manifest the tag points to.  The API does not
        support deleting by tag, only by digest, so every tag pointing
        to the same manifest goes too."""

        manifest = await self.get_manifest(token)
        name = self.parent.name

        if manifest is None or not manifest.digest:
            raise ManifestNotFound(self.reference)

        if self.registry.dry_run:
            print("-- (not really) Deleting manifest for %s@%s" % (name, manifest.digest),
                  file=sys.stderr)
            return

        if self.registry.verbose:
            print("-- Deleting manifest for %s@%s" % (name, manifest.digest), file=sys.stderr)

        await registry_v2_request('DELETE', self.registry,
                                  "%s/manifests/%s" % (name, manifest.digest),
                                  "repository:%s:*" % name, token)
