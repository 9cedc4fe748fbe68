from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_path: str = "autofarm.db"
    timezone: str = "UTC"
    simulation_interval: float = 5.0  # seconds between ticks
    simulation_workers: int = 4
    max_history: int = 60  # readings kept per unit and sensor
    alert_history_limit: int = 50
    random_seed: Optional[int] = None
    use_streamlit: bool = False  # Run the Streamlit dashboard instead of the REST API
    server_host: str = "0.0.0.0"
    server_port: int = 3000
    streamlit_port: int = 8501

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "AUTOFARM_"


settings = Settings()
