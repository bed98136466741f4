"""Web Server Gateway Interface entry-point."""

import os

from shopdash.app import make_app
from shopdash.app_logging import setup_logger
from shopdash.config import DashboardConfig

setup_logger(os.environ.get("LOG_LEVEL", "INFO").upper())

application = make_app(DashboardConfig.from_environ())
