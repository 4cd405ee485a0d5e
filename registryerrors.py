#
# Exceptions raised by the registry client.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# CancelError lives in cancellable.py and is not a RegistryError.
#


class RegistryError(Exception):
    """Base class for everything that goes wrong talking to or keeping
    track of a registry."""


class RequestFailed(RegistryError):
    """A registry request came back with a non-2xx status."""

    def __init__(self, status, status_text):
        self.status = status
        self.status_text = status_text
        super().__init__("Request failed: %s %s" % (status, status_text))


class OAuthExchangeFailed(RegistryError):
    """The auth server refused to trade basic credentials for a bearer
    token."""

    def __init__(self, status, status_text):
        self.status = status
        self.status_text = status_text
        super().__init__("Failed to acquire OAuth token. Status Code: %s, Status: %s" %
                         (status, status_text))


class CatalogFetchFailed(RegistryError):
    """The _catalog endpoint failed, even after a possible auth
    upgrade.  errors is the list the registry put in the body, if
    any."""

    def __init__(self, status, status_text, errors=None):
        self.status = status
        self.status_text = status_text
        self.errors = errors or []
        super().__init__("Failed to get repositories. Status Code: %s, Status: %s, Errors: %s" %
                         (status, status_text, self.errors))


class ManifestUnreadable(RegistryError):
    def __init__(self, reference):
        self.reference = reference
        super().__init__("Manifest not readable: %s" % reference)


class ManifestNotFound(RegistryError):
    def __init__(self, reference):
        self.reference = reference
        super().__init__("Manifest not found: %s" % reference)


class ForeignRegistry(RegistryError):
    """Disconnect was called with a registry from another provider."""

    def __init__(self, registry_id, provider_id):
        self.registry_id = registry_id
        self.provider_id = provider_id
        super().__init__("Cannot disconnect registry with ID '%s' because it does not "
                         "belong to provider with ID '%s'." % (registry_id, provider_id))


class InvalidModeError(RegistryError):
    """Monolith operation on a non-monolith registry, or the other way
    around."""


class DuplicateRepository(RegistryError):
    def __init__(self, name):
        self.name = name
        super().__init__("Cannot add monolith repository '%s' because it is already added." % name)


class RegistryStateMissing(RegistryError):
    """The persisted state of a registry was read before it was set, or
    after it was cleared."""

    def __init__(self, key):
        self.key = key
        super().__init__("Registry state retrieved before being set. Key = '%s'" % key)
