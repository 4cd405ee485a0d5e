import pytest

from simulator import RegistryV2Simulator
from cancellable import CancellationToken
from RegistryProvider import RegistryProvider
from stores import MemoryStateStore, MemorySecretStore


@pytest.fixture
def token():
    return CancellationToken()


@pytest.fixture
def simulator():
    sim = RegistryV2Simulator()
    sim.start()
    yield sim
    sim.stop()


@pytest.fixture
def monolith_simulator():
    sim = RegistryV2Simulator(is_monolith=True)
    sim.start()
    yield sim
    sim.stop()


@pytest.fixture
def paging_simulator():
    sim = RegistryV2Simulator(page_size=2)
    sim.cache = {
        'alpha': [{'tag': t, 'digest': 'sha256:a%d' % i} for i, t in enumerate(['v1', 'v2', 'v3'])],
        'beta': [{'tag': 'latest', 'digest': 'sha256:b0'}],
        'gamma': [{'tag': 'latest', 'digest': 'sha256:c0'}],
    }
    sim.start()
    yield sim
    sim.stop()


@pytest.fixture
def provider():
    return RegistryProvider(MemoryStateStore(), MemorySecretStore(),
                            provider_id='TestRegistryV2Provider')
