import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    WTF_CSRF_ENABLED = os.environ.get('WTF_CSRF_ENABLED', 'true').lower() in ('true', '1')
    WTF_CSRF_TIME_LIMIT = None

    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')
    FIREBASE_INIT = True

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    DEFAULT_PAGE_SIZE = int(os.environ.get('DEFAULT_PAGE_SIZE', 20))
    RECENT_STUDENTS_LIMIT = 5
    TOP_PERFORMERS_LIMIT = 5
    # 1 keeps per-student report fetches sequential
    REPORT_FANOUT_WORKERS = int(os.environ.get('REPORT_FANOUT_WORKERS', 4))


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    FIREBASE_INIT = False
    SECRET_KEY = 'test-secret'
    REPORT_FANOUT_WORKERS = 1
