import logging, sys, os

def setup_logging(env: str | None = None):
    logger = logging.getLogger("newsbeacon")
    if logger.handlers:
        return logger
    env = env or os.getenv("ENV", "dev")
    level = logging.INFO if env != "dev" else logging.DEBUG
    handler = logging.StreamHandler(sys.stdout)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    handler.setFormatter(fmt)
    logger.addHandler(handler)
    logger.setLevel(level)
    # apscheduler and discord.py log through their own loggers
    for name in ("apscheduler", "discord"):
        logging.getLogger(name).setLevel(logging.WARNING)
    return logger
