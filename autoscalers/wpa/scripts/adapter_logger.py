import logging
import os

LOG_FORMAT = '%(asctime)s %(name)-12s - %(levelname)6s - %(message)s'


class AdapterLogger:
    """Named logger writing to stderr and to the shared adapter log file.

    ADAPTER_LOG_FILE and ADAPTER_LOG_LEVEL override the file path and level.
    """

    def __init__(self, name: str, level: int | None = None):
        if level is None:
            level = logging.getLevelName(os.getenv("ADAPTER_LOG_LEVEL", "INFO").upper())
            if not isinstance(level, int):
                level = logging.INFO
        sh = logging.StreamHandler()
        sh.setLevel(level)
        fh = logging.FileHandler(os.getenv("ADAPTER_LOG_FILE", "/tmp/adapter.log"))
        fh.setLevel(level)
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            handlers=[fh, sh])
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
