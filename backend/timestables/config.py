"""
Application settings read from the environment.

Every module that needs configuration imports it from here so the
process reads its environment exactly once.
"""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./timestables.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Signing key for the bmtt_teacher / bmtt_student session cookies
SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-secret-change-me")
SESSION_ALGORITHM = "HS256"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

TEACHER_COOKIE = "bmtt_teacher"
STUDENT_COOKIE = "bmtt_student"
TEACHER_COOKIE_MAX_AGE = 60 * 60 * 24 * 7      # 7 days
STUDENT_COOKIE_MAX_AGE = 60 * 60 * 24 * 60     # 60 days

# Base URL used when building teacher set-password links
APP_URL = os.getenv("APP_URL", "http://localhost:3000")
INVITE_TTL_HOURS = 24

# ──────────────────────────────────────────────────────────────
# Quiz settings
# ──────────────────────────────────────────────────────────────
MIN_TABLE = 1
MAX_TABLE = 19
ALLOWED_SECONDS_PER_QUESTION = (3, 6, 9, 12)
DEFAULT_SECONDS_PER_QUESTION = int(os.getenv("DEFAULT_SECONDS_PER_QUESTION", "6"))
DEFAULT_QUESTION_COUNT = int(os.getenv("DEFAULT_QUESTION_COUNT", "25"))
MIN_QUESTION_COUNT = 10
MAX_QUESTION_COUNT = 60

# ──────────────────────────────────────────────────────────────
# Attainment settings
# ──────────────────────────────────────────────────────────────
CONCERN_THRESHOLD = 70
INSIGHT_LIST_SIZE = 10
INSIGHT_MIN_ATTEMPTS = 2
DEFAULT_WINDOW_DAYS = 30
MIN_WINDOW_DAYS = 7
MAX_WINDOW_DAYS = 90
DEFAULT_HEATMAP_DAYS = 30
