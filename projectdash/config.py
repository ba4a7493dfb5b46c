import os
from dotenv import load_dotenv


class Config:
    """Application configuration, read from the environment (and ``.env``)."""
    def __init__(self, load_env=True):
        if load_env:
            load_dotenv()
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///projects.db")
        self.github_user = os.getenv("GITHUB_USER") or None
        self.scan_root = os.getenv("SCAN_ROOT", "~/Code")
        self.cutoff_days = int(os.getenv("CUTOFF_DAYS", "240"))
        self.max_depth = int(os.getenv("MAX_DEPTH", "10"))
        self.commit_window_days = int(os.getenv("COMMIT_WINDOW_DAYS", "240"))
        self.git_timeout = float(os.getenv("GIT_TIMEOUT", "30"))
        self.scan_workers = max(1, int(os.getenv("SCAN_WORKERS", "1")))
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_dir = os.getenv("LOG_DIR", "logs")


def get_config(load_env=True):
    return Config(load_env=load_env)
