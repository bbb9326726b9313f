import os
import platform
from pathlib import Path
from typing import Optional

class Settings:
    database_url: str
    data_dir: Path
    origin_country: str
    currency: str
    duty_api_url: Optional[str]
    duty_api_key: Optional[str]
    duty_timeout: float
    log_level: str

    def __init__(self) -> None:
        # Determine data directory (overrideable via env)
        data_dir_env = os.getenv("SHIPRATES_DATA_DIR")
        if data_dir_env:
            self.data_dir = Path(data_dir_env)
        else:
            if platform.system() == "Windows":
                localapp = os.getenv("LOCALAPPDATA") or os.path.expanduser("~\\AppData\\Local")
                self.data_dir = Path(localapp) / "ShipRates"
            else:
                self.data_dir = Path("data")
        self.data_dir.mkdir(parents=True, exist_ok=True)

        default_sqlite = f"sqlite:///{(self.data_dir / 'rates.db').as_posix()}"
        self.database_url = os.getenv("DATABASE_URL", default_sqlite)

        # Shipments leave from here; quotes to the same country skip duties
        self.origin_country = os.getenv("SHIPRATES_ORIGIN_COUNTRY", "TR").upper()
        self.currency = os.getenv("SHIPRATES_CURRENCY", "USD").upper()

        self.duty_api_url = os.getenv("SHIPRATES_DUTY_API_URL") or None
        self.duty_api_key = os.getenv("SHIPRATES_DUTY_API_KEY") or None
        self.duty_timeout = float(os.getenv("SHIPRATES_DUTY_TIMEOUT", "10"))

        self.log_level = os.getenv("SHIPRATES_LOG_LEVEL", "INFO")

settings = Settings()
