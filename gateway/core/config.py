"""
Gateway config - reads from environment.
Use .env locally; Docker injects via env_file. Never commit .env.
"""
import os

from dotenv import load_dotenv

load_dotenv()


PROJECT_NAME = os.environ.get("PROJECT_NAME", "SmartLend Servicing Gateway")

# SmartLend API (loans, EMIs, admin configuration)
SMARTLEND_API_URL = os.environ.get("SMARTLEND_API_URL", "http://localhost:8081/api")
SMARTLEND_API_TIMEOUT = float(os.environ.get("SMARTLEND_API_TIMEOUT", "30.0"))

# Comma separated; "*" allows any origin
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class Settings:
    PROJECT_NAME = PROJECT_NAME
    SMARTLEND_API_URL = SMARTLEND_API_URL
    SMARTLEND_API_TIMEOUT = SMARTLEND_API_TIMEOUT
    CORS_ORIGINS = CORS_ORIGINS
    LOG_LEVEL = LOG_LEVEL

    @property
    def cors_origins_list(self) -> list:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
