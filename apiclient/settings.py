import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Backend endpoint
    api_base_url: str = Field(default="http://localhost:3001", alias="API_BASE_URL")
    api_request_timeout: float = Field(default=15.0, alias="API_REQUEST_TIMEOUT")

    # Retry Configuration
    api_max_retries: int = Field(default=2, alias="API_MAX_RETRIES")
    api_server_error_delay: float = Field(default=1.0, alias="API_SERVER_ERROR_DELAY")
    api_rate_limit_base_delay: float = Field(
        default=1.0, alias="API_RATE_LIMIT_BASE_DELAY"
    )
    api_max_retry_delay: float = Field(default=30.0, alias="API_MAX_RETRY_DELAY")

    # Session Configuration
    session_redirect_cooldown: float = Field(
        default=5.0, alias="SESSION_REDIRECT_COOLDOWN"
    )
    session_token_key: str = Field(default="idToken", alias="SESSION_TOKEN_KEY")
    sign_in_path: str = Field(default="/login", alias="SIGN_IN_PATH")

    debug: bool = Field(default=False, alias="API_CLIENT_DEBUG")


global_settings = Settings.model_validate(dict(os.environ))
