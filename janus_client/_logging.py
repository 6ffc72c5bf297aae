# =============================================================================
# Janus Python Client -- Library Logger
# =============================================================================

import logging

logger = logging.getLogger("janus_client")
logger.addHandler(logging.NullHandler())
