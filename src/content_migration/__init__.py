"""Content Bridge - push pulled stories and assets into another space."""

import logging

__version__ = "0.1.0"

# httpx logs every request at INFO; client.base_client logs them itself
for _name in ("httpx", "httpcore"):
    logging.getLogger(_name).setLevel(logging.WARNING)
