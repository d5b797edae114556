import os

from dotenv import load_dotenv

load_dotenv()

DB_CONFIG = {
    "DB_HOST": os.getenv("DB_HOST", "localhost"),
    "DB_PORT": int(os.getenv("DB_PORT", "5432")),
    "DB_NAME": os.getenv("DB_NAME", "purge_bot"),
    "DB_USER": os.getenv("DB_USER", "postgres"),
    "DB_PASS": os.getenv("DB_PASS", ""),
}


def get_database_url():
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return (
        f"postgresql://{DB_CONFIG['DB_USER']}:{DB_CONFIG['DB_PASS']}"
        f"@{DB_CONFIG['DB_HOST']}:{DB_CONFIG['DB_PORT']}/{DB_CONFIG['DB_NAME']}"
    )
