import logging

logger = logging.getLogger("metafetch")


def global_error_handler(error: Exception, description: str = None):
    message = f"{error.__class__.__name__}: {str(error)}"
    if description:
        message = f"{description}: {message}"
    logger.error(message, exc_info=(type(error), error, error.__traceback__))
