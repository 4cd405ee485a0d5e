#
# Storage for registry state (non-secret) and registry secrets.
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# A state store has:
#   get(key, default=None)
#   update(key, value)        value None removes the key
#   keys()
#
# A secret store has:
#   get_password(service, account)       -> str or None
#   set_password(service, account, secret)
#   delete_password(service, account)    -> True if something was deleted
#

import os
import json
import copy

import keyring
import keyring.errors


class MemoryStateStore:
    """State kept in a dict, gone when the process exits"""

    def __init__(self, initial=None):
        self.cache = dict(initial or {})

    def get(self, key, default=None):
        if key not in self.cache:
            return default
        # Hand out copies so callers can't change the stored state
        # behind our back
        return copy.deepcopy(self.cache[key])

    def update(self, key, value):
        if value is None:
            self.cache.pop(key, None)
        else:
            self.cache[key] = copy.deepcopy(value)

    def keys(self):
        return list(self.cache.keys())


class JsonStateStore(MemoryStateStore):
    """State kept in a JSON file.  The whole file is read when the
    store is created and rewritten on every update."""

    def __init__(self, path):
        self.path = path

        try:
            with open(path, "r") as f:
                data = json.loads(f.read())

        except FileNotFoundError:
            data = {}

        if not isinstance(data, dict):
            raise ValueError("%s does not contain a JSON object" % path)

        super().__init__(data)

    def update(self, key, value):
        super().update(key, value)

        tmp = "%s.tmp" % self.path
        with open(tmp, "w") as f:
            f.write(json.dumps(self.cache, indent=2, sort_keys=True))
        os.replace(tmp, self.path)


class MemorySecretStore:
    """Secrets kept in a nested dict: service -> account -> secret"""

    def __init__(self):
        self.cache = {}

    def get_password(self, service, account):
        return self.cache.get(service, {}).get(account)

    def set_password(self, service, account, secret):
        self.cache.setdefault(service, {})[account] = secret

    def delete_password(self, service, account):
        if account not in self.cache.get(service, {}):
            return False

        del self.cache[service][account]

        # If nothing remains delete the service too
        if len(self.cache[service]) == 0:
            del self.cache[service]

        return True


class KeyringSecretStore:
    """Secrets kept in the system keyring (via the keyring library).
    The service is prefixed so our entries don't collide with
    whatever else the user keeps in there."""

    def __init__(self, prefix="registry-v2-ops"):
        self.prefix = prefix

    def _service(self, service):
        return "%s:%s" % (self.prefix, service)

    def get_password(self, service, account):
        return keyring.get_password(self._service(service), account)

    def set_password(self, service, account, secret):
        keyring.set_password(self._service(service), account, secret)

    def delete_password(self, service, account):
        try:
            keyring.delete_password(self._service(service), account)

        except keyring.errors.PasswordDeleteError:
            return False

        return True
