from types import SimpleNamespace

import pytest
from kubernetes.client.rest import ApiException

from k3sctl.modules.k3s.settings import set_settings


class FakeStorageApi:
    """In-memory stand-in for kubernetes.client.StorageV1Api."""

    def __init__(self, classes=None, fail_on=None):
        # name -> {'annotations': {...}, 'provisioner': str}
        self.classes = {}
        for name, spec in (classes or {}).items():
            self.add(name, spec.get('provisioner', 'rancher.io/local-path'), spec.get('annotations'))
        self.fail_on = fail_on
        self.patches = []

    def add(self, name, provisioner, annotations=None):
        self.classes[name] = {'annotations': dict(annotations or {}), 'provisioner': provisioner}

    def list_storage_class(self):
        return SimpleNamespace(items=[
            SimpleNamespace(
                metadata=SimpleNamespace(name=name, annotations=dict(spec['annotations'])),
                provisioner=spec['provisioner'],
            )
            for name, spec in self.classes.items()
        ])

    def patch_storage_class(self, name, body):
        if name == self.fail_on:
            raise ApiException(status=500, reason="boom")
        self.patches.append((name, body))
        self.classes[name]['annotations'].update(body['metadata']['annotations'])


@pytest.fixture
def storage_api_factory():
    return FakeStorageApi


@pytest.fixture(autouse=True)
def reset_settings():
    set_settings(None)
    yield
    set_settings(None)
