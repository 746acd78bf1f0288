import os

os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite://")
