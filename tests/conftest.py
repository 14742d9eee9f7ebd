import copy
import itertools

import pytest
from google.api_core.exceptions import NotFound, ServiceUnavailable
from google.cloud.firestore_v1.transforms import ArrayRemove, ArrayUnion

from config import TestConfig
from portal import create_app
from portal import firebase_init


# ---------------------------------------------------------------------------
# In-memory Firestore
# ---------------------------------------------------------------------------

_ids = itertools.count(1)


def _apply(current, updates):
    data = dict(current)
    for key, value in updates.items():
        if isinstance(value, ArrayUnion):
            existing = list(data.get(key) or [])
            data[key] = existing + [v for v in value.values if v not in existing]
        elif isinstance(value, ArrayRemove):
            data[key] = [v for v in (data.get(key) or []) if v not in value.values]
        else:
            data[key] = value
    return data


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, db, collection, doc_id):
        self._db = db
        self._collection = collection
        self.id = doc_id

    @property
    def _store(self):
        return self._db.data.setdefault(self._collection, {})

    def get(self):
        self._db.check(self._collection)
        return FakeSnapshot(self.id, self._store.get(self.id))

    def set(self, data):
        self._store[self.id] = copy.deepcopy(data)

    def update(self, data):
        if self.id not in self._store:
            raise NotFound(f'{self._collection}/{self.id}')
        self._store[self.id] = _apply(self._store[self.id], data)

    def delete(self):
        self._store.pop(self.id, None)


class FakeQuery:
    def __init__(self, db, collection, filters=(), orders=(), limit=None):
        self._db = db
        self._collection = collection
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit

    def where(self, filter):
        return FakeQuery(self._db, self._collection,
                         self._filters + ((filter.field_path, filter.op_string, filter.value),),
                         self._orders, self._limit)

    def order_by(self, field, direction='ASCENDING'):
        return FakeQuery(self._db, self._collection, self._filters,
                         self._orders + ((field, direction),), self._limit)

    def limit(self, count):
        return FakeQuery(self._db, self._collection, self._filters, self._orders, count)

    def stream(self):
        self._db.check(self._collection)
        rows = list(self._db.data.get(self._collection, {}).items())
        for field, op, value in self._filters:
            assert op == '==', op
            rows = [(i, d) for i, d in rows if d.get(field) == value]
        for field, direction in reversed(self._orders):
            rows = [(i, d) for i, d in rows if field in d]
            rows.sort(key=lambda row: (row[1][field] is not None, row[1][field] or 0),
                      reverse=direction == 'DESCENDING')
        if self._limit is not None:
            rows = rows[:self._limit]
        return iter([FakeSnapshot(i, copy.deepcopy(d)) for i, d in rows])


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        super().__init__(db, name)

    def document(self, doc_id=None):
        return FakeDocument(self._db, self._collection, doc_id or f'auto-{next(_ids)}')


class FakeBatch:
    def __init__(self):
        self._ops = []

    def set(self, ref, data):
        self._ops.append(lambda: ref.set(data))

    def update(self, ref, data):
        self._ops.append(lambda: ref.update(data))

    def delete(self, ref):
        self._ops.append(ref.delete)

    def commit(self):
        for op in self._ops:
            op()


class FakeFirestore:
    def __init__(self):
        self.data = {}
        self.failing = set()

    def check(self, collection):
        if collection in self.failing:
            raise ServiceUnavailable(f'{collection} unavailable')

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch()

    def raw(self, collection, doc_id):
        return self.data.get(collection, {}).get(doc_id)


class FakeAuth:
    """Session cookies in tests look like ``"<uid>:<role>"``."""

    def verify_session_cookie(self, cookie, check_revoked=False):
        uid, _, role = cookie.partition(':')
        if not uid:
            raise ValueError('invalid session cookie')
        claims = {'uid': uid}
        if role:
            claims['role'] = role
        return claims


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    fake = FakeFirestore()
    firebase_init.set_db(fake)
    yield fake
    firebase_init.set_db(None)


@pytest.fixture
def app(db, monkeypatch):
    monkeypatch.setattr('portal.decorators.get_auth', lambda: FakeAuth())
    app = create_app(TestConfig)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login_as(client):
    def login(uid, role=''):
        with client.session_transaction() as sess:
            sess['firebase_session'] = f'{uid}:{role}' if role else uid
        return client
    return login


class Factory:
    """Writes records through the DAO so tests see what the app stores."""

    def __init__(self, dao):
        self.dao = dao

    def student(self, uid, class_id='', **fields):
        from portal.firestore_models import StudentProfile
        fields.setdefault('full_name', f'Student {uid}')
        fields.setdefault('email', f'{uid}@example.com')
        student = self.dao.create_student(StudentProfile(id=uid, **fields))
        if class_id:
            self.dao.assign_student_to_class(uid, class_id)
            student.class_id = class_id
        return student

    def teacher(self, uid, classes=(), **fields):
        from portal.firestore_models import TeacherProfile
        fields.setdefault('full_name', f'Teacher {uid}')
        fields.setdefault('email', f'{uid}@example.com')
        return self.dao.create_teacher(TeacherProfile(id=uid, classes=list(classes), **fields))

    def hr(self, uid, **fields):
        from portal.firestore_models import HRProfile
        fields.setdefault('full_name', f'HR {uid}')
        fields.setdefault('email', f'{uid}@example.com')
        return self.dao.create_user(HRProfile(id=uid, **fields))

    def school_class(self, class_id, **fields):
        from portal.firestore_models import SchoolClass
        fields.setdefault('name', f'Grade {class_id}')
        return self.dao.create_class(SchoolClass(id=class_id, **fields))

    def grade(self, student_id, subject='Mathematics', term='First', year=2024, **scores):
        from portal.firestore_models import Grade
        return self.dao.create_grade(Grade(student_id=student_id, subject=subject,
                                           term=term, year=year, **scores))

    def attendance(self, student_id, class_id, day, status='Present'):
        from portal.firestore_models import Attendance
        return self.dao.record_attendance(Attendance(student_id=student_id, class_id=class_id,
                                                     date=day, status=status))


@pytest.fixture
def make(db):
    from portal import firestore_dao
    return Factory(firestore_dao)
