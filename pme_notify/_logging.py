# =============================================================================
# PME Notify -- Package Logger
# =============================================================================

import logging

logger = logging.getLogger("pme_notify")
