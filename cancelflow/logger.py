import logging
import os
from datetime import datetime


LOG_DIR = os.getenv("CANCELFLOW_LOG_DIR", os.path.join(os.getcwd(), "logs"))
LOG_LEVEL = os.getenv("CANCELFLOW_LOG_LEVEL", "INFO").upper()
LOG_FILE = f"{datetime.now().strftime('%m_%d_%Y_%H_%M_%S')}.log"

os.makedirs(LOG_DIR, exist_ok=True)
LOG_FILE_PATH = os.path.join(LOG_DIR, LOG_FILE)

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="[ %(asctime)s ] %(lineno)d %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE_PATH, encoding="utf-8"),
        logging.StreamHandler(),
    ],
)
