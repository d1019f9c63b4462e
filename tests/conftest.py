import os
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from atomcerts.app import create_app, db
from atomcerts.models import User


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    os.environ["SITE_ROOT"] = str(tmp_path)
    os.environ["RENDER_ASSET_ROOT"] = str(tmp_path / "assets")
    # keep raster renders small in tests
    os.environ["RENDER_RASTER_SCALE"] = "1.0"
    application = create_app()
    application.config["TESTING"] = True
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(app):
    user = User(email="admin@example.com", name="Admin", is_admin=True)
    user.set_password("pw")
    db.session.add(user)
    db.session.commit()
    return user


def login_user(client, user_id):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id


@pytest.fixture
def admin_client(client, admin):
    login_user(client, admin.id)
    return client
