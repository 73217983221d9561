from dotenv import load_dotenv
import os

load_dotenv()

class DBConfig():
    host: str = os.getenv("DB_HOST", "localhost")
    port: int = int(os.getenv("DB_PORT", 5432))
    user: str = os.getenv("DB_USER", "busapp")
    password: str = os.getenv("DB_PASSWORD", "busapp123")
    database: str = os.getenv("DB_NAME", "bus_tracker")
    url: str = os.getenv("DATABASE_URL", "")
    echo: bool = os.getenv("DB_ECHO", "false").lower() == "true"
    pool_size: int = int(os.getenv("DB_POOL_SIZE", 10))
    pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", 30))

    def connection_string(self) -> str:
        if self.url:
            return self.url
        return (
            f"postgresql+psycopg2://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )

db_config = DBConfig()

class ImportConfig():
    """Configuration for batch imports."""
    data_dir: str = os.getenv("IMPORT_DATA_DIR", "data")
    stops_file: str = os.getenv("IMPORT_STOPS_FILE", "stops.json")
    routes_file: str = os.getenv("IMPORT_ROUTES_FILE", "routes.json")
    route_stops_file: str = os.getenv("IMPORT_ROUTE_STOPS_FILE", "route_stops.json")
    show_progress: bool = os.getenv("IMPORT_SHOW_PROGRESS", "true").lower() == "true"

import_config = ImportConfig()

class ApiConfig():
    host: str = os.getenv("API_HOST", "0.0.0.0")
    port: int = int(os.getenv("API_PORT", 3001))
    debug: bool = os.getenv("API_DEBUG", "false").lower() == "true"

api_config = ApiConfig()
