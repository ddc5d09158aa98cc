import os


def normalize_db_url(url: str) -> str:
    # Hosted Postgres providers still hand out the legacy scheme
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Configuration for the Flask app and database.

    - ``SQLALCHEMY_DATABASE_URI``: defaults to a local SQLite file but can be
      overridden via the ``DATABASE_URL`` environment variable (PostgreSQL in
      production).
    - ``PRINT_BATCH_SIZE``: number of order sheets printed together.  Smaller
      batches waste paper, so the UI asks for confirmation below this size.
    - ``PRINTED_RETENTION_DAYS``: how long printed queue entries are kept
      before the cleanup command removes them.
    - ``LABEL_DIR``: where rendered item labels are written.  Empty means
      ``<instance_path>/labels``.
    """

    SQLALCHEMY_DATABASE_URI = normalize_db_url(
        os.getenv("DATABASE_URL", "sqlite:///floortrack.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")

    PRINT_BATCH_SIZE = int(os.getenv("PRINT_BATCH_SIZE", "4"))
    PRINTED_RETENTION_DAYS = int(os.getenv("PRINTED_RETENTION_DAYS", "30"))
    LABEL_DIR = os.getenv("LABEL_DIR", "")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PRINT_BATCH_SIZE = 4
    LOG_LEVEL = "DEBUG"
