import os

# Settings are read on first import; point them at a throwaway database.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:////tmp/synkboard_test_api.db")
os.environ.setdefault("AUTO_CREATE_DB", "true")
os.environ.setdefault("SYNKBOARD_ENV", "dev")
