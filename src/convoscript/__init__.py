from importlib.metadata import PackageNotFoundError, version
import logging
from pathlib import Path

# assumes:
# convoscript
# ├ src/
# | └ convoscript
# |   └ __init__.py - (this file)
# └ VERSION
try:
    __version__ = version("convoscript")
except PackageNotFoundError:
    with open(Path(__file__).parent.parent.parent / "VERSION", "r") as f:
        __version__ = f.readline().strip()

# add nullhandler to prevent a default configuration being used if the calling application doesn't set one
logging.getLogger("convoscript").addHandler(logging.NullHandler())
