import logging, sys

from atomize.settings import get_settings

logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],  # stdout -> container logs
)

logger = logging.getLogger(__name__)
