from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    SERVICE_SECRET: str = Field("dev-service-secret")
    # Comma-separated "token:agent_id:email:balance" entries
    STUB_ACCOUNTS: str = Field("dev-token:agent-dev:dev@example.com:100")
    STUB_COST_PER_UNIT: float = Field(0.01, ge=0)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
