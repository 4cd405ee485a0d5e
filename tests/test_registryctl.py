import json
from datetime import datetime, timezone

import pytest

import registryctl
from stores import MemorySecretStore


@pytest.fixture
def ctl(tmp_path, monkeypatch):
    """Run registryctl with the state in tmp_path and the secrets in
    memory"""

    secrets = MemorySecretStore()
    monkeypatch.setenv('STATEDIR', str(tmp_path))
    monkeypatch.setenv('REGISTRY_PASSWORD', 'test')
    monkeypatch.setattr(registryctl, 'KeyringSecretStore', lambda: secrets)

    def run(*argv):
        registryctl.main(['-s', '0'] + list(argv))

    run.secrets = secrets
    run.state_file = tmp_path / 'registries.json'
    return run


def test_split_image():
    assert registryctl.split_image('myimage:latest') == ('myimage', 'latest')
    assert registryctl.split_image('team/myimage@sha256:baadf00d') == ('team/myimage', 'sha256:baadf00d')
    assert registryctl.split_image('myimage') == ('myimage', None)
    assert registryctl.split_image('localhost:5000/myimage') == ('localhost:5000/myimage', None)


def test_parse_created():
    assert registryctl.parse_created('2020-01-01') == datetime(2020, 1, 1, tzinfo=timezone.utc)
    assert registryctl.parse_created('2020-01-01T10:00:00.5Z').hour == 10
    assert registryctl.parse_created(None) < registryctl.parse_created('1970-01-01')


def test_connect_ls_rm_disconnect(ctl, simulator, capsys):
    ctl('connect', simulator.registry_url, 'test')
    assert 'Connected %s' % simulator.registry in capsys.readouterr().out
    assert ctl.secrets.get_password(simulator.registry_url, 'test') == 'test'

    ctl('ls', '-d')
    out = capsys.readouterr().out
    assert simulator.registry in out
    assert 'myimage:latest@sha256:baadf00d (2020-01-01 00:00:00)' in out

    ctl('rm', simulator.registry, 'myimage:latest')
    assert simulator.paths('DELETE') == ['/v2/myimage/manifests/sha256:baadf00d']

    ctl('disconnect', simulator.registry)
    assert json.loads(ctl.state_file.read_text()) == {}
    assert ctl.secrets.cache == {}


def test_monolith_repositories(ctl, monolith_simulator, capsys):
    ctl('connect', '-m', 'myimage', monolith_simulator.registry_url, 'test')
    ctl('add-repo', monolith_simulator.registry, 'canary')

    state = json.loads(ctl.state_file.read_text())
    (key,) = [k for k in state if k.endswith('.state')]
    assert state[key]['monolithRepositories'] == ['myimage', 'canary']

    ctl('remove-repo', monolith_simulator.registry, 'canary')
    capsys.readouterr()

    ctl('ls')
    assert '  myimage:latest' in capsys.readouterr().out
    assert not monolith_simulator.catalog_called


def test_rm_dry_run(ctl, simulator):
    ctl('connect', simulator.registry_url, 'test')
    ctl('rm', '-n', simulator.registry, 'myimage')

    assert simulator.paths('DELETE') == []


def test_unknown_registry(ctl):
    with pytest.raises(SystemExit):
        ctl('ls', 'nosuch.example.com')


def test_registry_error_exits(ctl, simulator):
    ctl('connect', simulator.registry_url, 'test')

    with pytest.raises(SystemExit) as e:
        ctl('rm', simulator.registry, 'myimage:nosuch')

    assert 'Error' in str(e.value.code)


def test_rm_with_token_auth(ctl, simulator):
    ctl('connect', simulator.registry_url, 'test')
    simulator.require_oauth()

    ctl('rm', simulator.registry, 'myimage:latest')

    assert simulator.paths('DELETE') == ['/v2/myimage/manifests/sha256:baadf00d']
    assert simulator.token_requests
