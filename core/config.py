import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Runtime settings read from the environment (and a local .env file)."""

    def __init__(self):
        self.APP_NAME = os.getenv("APP_NAME", "SpendAI API")
        self.ENV = os.getenv("ENV", "development")
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./spendai.db")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_FILE = os.getenv("LOG_FILE")
        self.GROQ_API_KEY = os.getenv("GROQ_API_KEY")
        self.GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
        self.ANOMALY_HISTORY_MONTHS = int(os.getenv("ANOMALY_HISTORY_MONTHS", "3"))


settings = Settings()


def get_settings() -> Settings:
    return settings
