from datetime import datetime
from types import SimpleNamespace

import jwt
import pytest

from roombook import create_app, db
from roombook.config import TestingConfig
from roombook.errors import DeliveryError
from roombook.models import BookingCategory, Building, Room, User, seed_lookups
from roombook.services.channels import DeliveryChannel

BASE = datetime(2030, 1, 15, 10, 0)


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        seed_lookups(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions['roombook']


@pytest.fixture
def init_data(app):
    alice = User(username='alice', email='alice@test.com', role='user')
    bob = User(username='bob', email='bob@test.com', role='user')
    carol = User(username='carol', email='carol@test.com', role='user')
    admin = User(username='admin', email='admin@test.com', role='admin')
    hq = Building(name='HQ')
    room_r = Room(name='Room R', capacity=8, building=hq)
    room_s = Room(name='Room S', capacity=4, building=hq)
    category = BookingCategory(name='Meeting')
    db.session.add_all([alice, bob, carol, admin, hq, room_r, room_s, category])
    db.session.commit()
    return SimpleNamespace(alice=alice, bob=bob, carol=carol, admin=admin,
                           room_r=room_r, room_s=room_s, category=category)


@pytest.fixture
def auth_headers(app):
    def make(user):
        token = jwt.encode({'user_id': user.id}, app.config['SECRET_KEY'], algorithm="HS256")
        return {'Authorization': f"Bearer {token}"}
    return make


class FakeChannel(DeliveryChannel):
    """Records sends; raises DeliveryError while ``fail`` is set."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, notification, user):
        if self.fail:
            raise DeliveryError("smtp unavailable")
        self.sent.append((notification.id, user.id))


@pytest.fixture
def fake_channels(engine):
    from roombook.models import DeliveryMethodCode

    channels = {
        DeliveryMethodCode.EMAIL: FakeChannel(),
        DeliveryMethodCode.IN_APP: FakeChannel(),
        DeliveryMethodCode.PUSH: FakeChannel(),
    }
    engine.dispatcher.channels = channels
    return SimpleNamespace(email=channels[DeliveryMethodCode.EMAIL],
                           in_app=channels[DeliveryMethodCode.IN_APP],
                           push=channels[DeliveryMethodCode.PUSH])
