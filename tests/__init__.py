import os
import tempfile

# Config and the default database live in the user data dir; keep tests out of the real one.
os.environ.setdefault("GAF_DATA_DIR", tempfile.mkdtemp(prefix="gaf-tests-"))
