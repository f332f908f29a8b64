import logging

LOG_FMT = "%(asctime)s - %(levelname)-8s - %(name)s - %(funcName)s:%(lineno)d - %(message)s"

# HTTP client libraries log every request at DEBUG/INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")


def basic_log_config(level: int | str = logging.WARNING, **kwargs) -> None:
    """Configure logging for script runs.

    Parameters
    ----------
    level : int | str, optional
        Level for the root logger, as a number or a name like "INFO", by default logging.WARNING
    **kwargs
        Passed through to ``logging.basicConfig``.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ValueError(f"Unknown log level: {level}")

    logging.basicConfig(level=level, format=LOG_FMT, **kwargs)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
