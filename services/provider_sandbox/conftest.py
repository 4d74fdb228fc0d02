# The sandbox reads its settings at import time, so point it at a throwaway
# database and known keys before 'main' or 'repo' is imported.
import os
import sys
import tempfile
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
p = str(BASE_DIR)
if p not in sys.path:
    sys.path.insert(0, p)

_db_dir = tempfile.mkdtemp(prefix="provider_sandbox_")
os.environ["SANDBOX_DATABASE_URL"] = f"sqlite:///{_db_dir}/sandbox.db"
os.environ["SANDBOX_KEY_ID"] = "rzp_test_sandbox"
os.environ["SANDBOX_KEY_SECRET"] = "sandbox_secret"
