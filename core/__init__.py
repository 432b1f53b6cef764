# Core package for configuration, logging and errors

from .config import settings
from .logging import setup_logging, get_logger
from .exceptions import setup_exception_handlers, APIException, AIServiceException
