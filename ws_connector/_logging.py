# =============================================================================
# WS Connector -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("ws_connector")
logger.addHandler(logging.NullHandler())
