import logging
from functools import wraps

from flask import request, redirect, url_for, flash, g, session

from portal import firestore_dao as dao
from portal.firebase_init import get_auth

logger = logging.getLogger(__name__)

# Where a signed-in user with no explicit role claim is looked up, in order.
ROLE_LOOKUP = (('student', dao.get_student), ('teacher', dao.get_teacher), ('hr', dao.get_user))


def _load_profile(uid, role):
    if role:
        profile = dao.get_profile(uid, role)
        if profile is not None and profile.role != role:
            logger.warning('Role mismatch for %s: session says %s, profile says %s',
                           uid, role, profile.role)
            return None
        return profile
    for _, getter in ROLE_LOOKUP:
        profile = getter(uid)
        if profile is not None:
            return profile
    return None


def _verify_session():
    """Verify the Firebase session cookie and load the caller's profile."""
    session_cookie = session.get('firebase_session')
    if not session_cookie:
        return None

    auth = get_auth()
    try:
        decoded = auth.verify_session_cookie(session_cookie, check_revoked=True)
    except Exception:
        logger.info('Rejected session cookie', exc_info=True)
        return None

    uid = decoded['uid']
    role = decoded.get('role') or session.get('role')
    return _load_profile(uid, role)


class CurrentUser:
    """Request-scoped proxy over the signed-in user's typed profile."""

    def __init__(self, profile=None):
        self._profile = profile

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return getattr(self._profile, name, None)

    @property
    def profile(self):
        return self._profile

    @property
    def is_authenticated(self):
        return self._profile is not None

    @property
    def uid(self):
        return self._profile.id if self._profile else ''

    @property
    def id(self):
        return self.uid

    @property
    def role(self):
        return self._profile.role if self._profile else ''

    @property
    def display_name(self):
        if not self._profile:
            return ''
        return self._profile.full_name or self._profile.email

    @property
    def initial(self):
        name = self.display_name
        return name[0].upper() if name else '?'

    def is_student(self):
        return self.role == 'student'

    def is_teacher(self):
        return self.role == 'teacher'

    def is_hr(self):
        return self.role == 'hr'


def load_current_user():
    """Load current user into g before each request."""
    if hasattr(g, '_current_user'):
        return
    g._current_user = CurrentUser(_verify_session())


def get_current_user():
    if not hasattr(g, '_current_user'):
        load_current_user()
    return g._current_user


def _login_redirect():
    flash('Please sign in to continue.', 'info')
    return redirect(url_for('main.index', next=request.url))


def auth_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        user = get_current_user()
        if not user.is_authenticated:
            return _login_redirect()
        g.current_user = user
        return f(*args, **kwargs)
    return decorated


def role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            user = get_current_user()
            if not user.is_authenticated:
                return _login_redirect()
            if user.role not in roles:
                logger.warning('User %s (%s) denied access to %s', user.uid, user.role, request.path)
                flash('You do not have access to that page.', 'danger')
                return redirect(url_for('main.index'))
            g.current_user = user
            return f(*args, **kwargs)
        return decorated
    return decorator


def teacher_scope(f):
    """Teacher-only view that receives the teacher's profile as ``g.teacher``.

    The profile comes from this request's session lookup, so class
    assignments changed by HR apply on the very next request.
    """
    @role_required('teacher')
    @wraps(f)
    def decorated(*args, **kwargs):
        teacher = g.current_user.profile
        if teacher is None:
            flash('Teacher profile not found.', 'danger')
            return redirect(url_for('main.index'))
        g.teacher = teacher
        return f(*args, **kwargs)
    return decorated
