import os
import tempfile

# Settings are read at import time
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("DB_NAME", "formbuilder_test")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="formbuilder-uploads-"))

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from formbuilder.database import Backend, get_backend
from formbuilder.main import app
from formbuilder.schemas import FieldDefinition


def make_field(id, type="text", position=0, **kwargs):
    return FieldDefinition(id=id, type=type, position=position, **kwargs)


def depends(parent, value=None, condition="equals", action="show"):
    return {"dependsOn": parent, "condition": condition, "value": value, "action": action}


@pytest.fixture
def backend():
    return Backend(AsyncMongoMockClient()["formbuilder_test"])


@pytest.fixture
def client(backend):
    app.dependency_overrides[get_backend] = lambda: backend
    yield TestClient(app)
    app.dependency_overrides.clear()
