import pytest
from fastapi.testclient import TestClient

from evaluation.config import Settings
from evaluation.database import Database
from evaluation.main import create_app


@pytest.fixture()
def database(tmp_path):
    """A fresh SQLite database with the tables created."""
    db = Database(f"sqlite:///{tmp_path / 'evaluation_test.db'}")
    db.create_all()
    yield db
    db.close()


@pytest.fixture()
def session(database):
    with database.session() as s:
        yield s


@pytest.fixture()
def app(tmp_path):
    settings = Settings(DATABASE_URL=f"sqlite:///{tmp_path / 'api_test.db'}")
    return create_app(settings)


@pytest.fixture()
def client(app):
    # entering the context runs the lifespan hook, which creates the tables
    with TestClient(app) as c:
        yield c
