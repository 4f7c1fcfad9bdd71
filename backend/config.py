import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/forms.db")
ORIGINS = os.getenv("ORIGINS", "http://localhost:3000").split(",")
DEMO_USER_ID = os.getenv("DEMO_USER_ID", "demo_user_1")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
ANALYTICS_DEFAULT_DAYS = int(os.getenv("ANALYTICS_DEFAULT_DAYS", "30"))
RESPONSES_LIMIT = int(os.getenv("RESPONSES_LIMIT", "100"))
