import logging

LOG_FMT = "%(asctime)s │ %(levelname)-7s │ %(message)s"


def setup_logger(name: str = "BinBot", level: int = logging.INFO) -> logging.Logger:
    logging.basicConfig(level=level, format=LOG_FMT, datefmt="%H:%M:%S")
    return logging.getLogger(name)

log = setup_logger()
