import base64

import pytest

from simulator import setup_provider
from Registry import RegistryV2
from registryerrors import InvalidModeError, DuplicateRepository, CatalogFetchFailed, \
    RequestFailed, RegistryStateMissing


async def auth_header(registry, scope, token):
    headers = {}
    await registry.sign_request(headers, scope, token)
    return headers.get('Authorization', '')


class TestRegistryV2:
    async def test_label(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)

        assert reg.label == reg.base_image_path
        assert reg.base_image_path == simulator.registry
        assert reg.registry_url == simulator.registry_url
        assert not reg.is_monolith

    async def test_get_repositories(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)
        simulator.catalog_called = False

        repositories = await reg.get_repositories(True, token)

        assert [r.name for r in repositories] == list(simulator.cache.keys())
        assert simulator.catalog_called

    async def test_get_repositories_caches(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)

        a = await reg.get_repositories(False, token)
        b = await reg.get_repositories(False, token)
        c = await reg.get_repositories(True, token)

        assert a is b
        assert a[0] is not c[0]

    async def test_starts_with_basic_auth(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)

        assert await auth_header(reg, 'registry:catalog:*', token) == \
            'Basic %s' % base64.b64encode(b'test:test').decode('ascii')

    async def test_switches_to_oauth_on_challenge(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)
        simulator.require_oauth()

        repositories = await reg.get_repositories(True, token)

        assert [r.name for r in repositories] == ['myimage']
        assert reg.auth_context.realm == 'http://%s/token' % simulator.registry
        assert reg.auth_context.service == simulator.registry
        assert await auth_header(reg, 'repository:myimage:pull', token) == 'Bearer silly'
        assert simulator.token_requests[-1]['scope'] == 'repository:myimage:pull'

    async def test_oauth_token_per_request(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)
        simulator.require_oauth()
        await reg.get_repositories(True, token)
        exchanges = len(simulator.token_requests)

        repo = (await reg.get_repositories(True, token))[0]
        await repo.get_tags(True, token)

        # One for the catalog, one for the tag list and one per manifest
        assert len(simulator.token_requests) == exchanges + 3

    async def test_refresh_forgets_oauth(self, simulator, token):
        provider, reg, _, _ = await setup_provider(simulator, token)
        simulator.require_oauth()
        await reg.get_repositories(True, token)

        fresh = (await provider.get_registries(True, token))[0]

        assert fresh.auth_context is None
        assert (await auth_header(fresh, 'registry:catalog:*', token)).startswith('Basic ')

    async def test_catalog_failure(self, monolith_simulator, provider, token):
        # A non-monolith registry pointing at a registry without _catalog
        reg = await provider.connect_registry(token, monolith_simulator.credentials)

        with pytest.raises(CatalogFetchFailed) as e:
            await reg.get_repositories(True, token)

        assert e.value.status == 404
        assert e.value.errors == [{'code': 'NAME_UNKNOWN'}]

    async def test_catalog_failure_html(self, monolith_simulator, provider, token):
        monolith_simulator.html_errors = True
        reg = await provider.connect_registry(token, monolith_simulator.credentials)

        with pytest.raises(CatalogFetchFailed) as e:
            await reg.get_repositories(True, token)

        assert e.value.status == 404
        assert e.value.errors == []

    async def test_catalog_pagination(self, paging_simulator, token):
        _, reg, _, _ = await setup_provider(paging_simulator, token)

        repositories = await reg.get_repositories(True, token)

        assert [r.name for r in repositories] == ['alpha', 'beta', 'gamma']

    async def test_monolith_repository_edits_refused(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)

        with pytest.raises(InvalidModeError):
            reg.connect_monolith_repository('test')

        with pytest.raises(InvalidModeError):
            reg.disconnect_monolith_repository('test')

    async def test_connect_non_monolith(self, simulator, provider, token):
        reg = RegistryV2.connect(provider, 'abc123', simulator.credentials, False)

        assert not reg.is_monolith
        await provider.disconnect_registry(reg)

    async def test_connect_non_monolith_with_repositories(self, simulator, provider):
        with pytest.raises(InvalidModeError):
            RegistryV2.connect(provider, 'abc123', simulator.credentials, False, ['abcd1234'])

        assert provider.state_store.keys() == []

    async def test_credentials(self, simulator, token):
        _, reg, _, _ = await setup_provider(simulator, token)

        assert reg.get_docker_login_credentials(token) == simulator.credentials

    async def test_state_gone_after_disconnect(self, simulator, token):
        provider, reg, _, _ = await setup_provider(simulator, token)

        await provider.disconnect_registry(reg)

        with pytest.raises(RegistryStateMissing):
            reg.state
        assert provider.state_store.keys() == []
        assert provider.secret_store.cache == {}


class TestMonolithRegistryV2:
    async def test_is_monolith(self, monolith_simulator, token):
        _, reg, _, _ = await setup_provider(monolith_simulator, token, is_monolith=True)

        assert reg.is_monolith

    async def test_get_repositories_without_catalog(self, monolith_simulator, token):
        _, reg, _, _ = await setup_provider(monolith_simulator, token, is_monolith=True)

        repositories = await reg.get_repositories(True, token)

        assert [r.name for r in repositories] == list(monolith_simulator.cache.keys())
        assert not monolith_simulator.catalog_called
        assert not [p for p in monolith_simulator.paths() if '_catalog' in p]

    async def test_connect_with_repositories(self, monolith_simulator, provider):
        reg = RegistryV2.connect(provider, 'abc123', monolith_simulator.credentials, True, ['myimage'])

        assert reg.is_monolith
        assert reg.state['monolithRepositories'] == ['myimage']
        await provider.disconnect_registry(reg)

    async def test_connect_without_repositories(self, monolith_simulator, provider, token):
        reg = RegistryV2.connect(provider, 'abc123', monolith_simulator.credentials, True)

        assert reg.is_monolith
        assert await reg.get_repositories(True, token) == []
        await provider.disconnect_registry(reg)

    async def test_add_and_remove_repository(self, monolith_simulator, token):
        _, reg, _, _ = await setup_provider(monolith_simulator, token, is_monolith=True)

        reg.connect_monolith_repository('canary')
        repositories = await reg.get_repositories(True, token)
        assert 'canary' in [r.name for r in repositories]

        reg.disconnect_monolith_repository('CANARY')
        repositories = await reg.get_repositories(True, token)
        assert 'canary' not in [r.name for r in repositories]

    async def test_add_duplicate_repository(self, monolith_simulator, token):
        _, reg, _, _ = await setup_provider(monolith_simulator, token, is_monolith=True)

        with pytest.raises(DuplicateRepository):
            reg.connect_monolith_repository('myimage')

    async def test_repository_disconnects_itself(self, monolith_simulator, token):
        _, reg, repo, _ = await setup_provider(monolith_simulator, token, is_monolith=True)

        repo.disconnect_monolith_repository()

        assert await reg.get_repositories(True, token) == []

    async def test_no_oauth_upgrade_outside_catalog(self, monolith_simulator, token):
        _, reg, repo, _ = await setup_provider(monolith_simulator, token, is_monolith=True)
        monolith_simulator.require_oauth()

        with pytest.raises(RequestFailed) as e:
            await repo.get_tags(True, token)

        assert e.value.status == 401
        assert reg.auth_context is None
