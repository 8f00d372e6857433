import os
from dotenv import load_dotenv

# Load .env automatically for local/dev usage
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self) -> None:
        self.flask_env = os.getenv("FLASK_ENV", "production")
        self.secret_key = os.getenv("SECRET_KEY", "dev")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")

        self.app_base_url = os.getenv("APP_BASE_URL", "http://127.0.0.1:5000").rstrip("/")

        # Steam rejects realms on localhost/127.0.0.1, use a LAN hostname when testing for real
        self.steam_realm = os.getenv("STEAM_REALM", self.app_base_url)
        self.steam_return_url = os.getenv("STEAM_RETURN_URL", f"{self.app_base_url}/auth/steam/return")
        self.steam_api_key = os.getenv("STEAM_API_KEY", "")
        self.fetch_user_profile = _flag("FETCH_USER_PROFILE", "true")
        self.fetch_steam_level = _flag("FETCH_STEAM_LEVEL", "false")
        self.steam_http_timeout = float(os.getenv("STEAM_HTTP_TIMEOUT", "10"))

        self.database_url = os.getenv("DATABASE_URL", "sqlite:///steamauth.db")


settings = Settings()
