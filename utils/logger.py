"""
╔══════════════════════════════════════════╗
║       HELM — Utilities: Logger           ║
╚══════════════════════════════════════════╝

Console + rotating file output for the "HELM" logger.
"""

import logging
import logging.handlers
import os


def setup_logger(config, base_dir):
    """Configure the HELM logger from the `agent` config section. Idempotent."""
    agent_cfg = config.get("agent", {})
    log_level = getattr(logging, str(agent_cfg.get("log_level", "INFO")).upper(), logging.INFO)

    logger = logging.getLogger("HELM")
    if logger.handlers:
        return logger  # Already configured
    logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(log_level)
    console.setFormatter(logging.Formatter("  %(message)s"))
    logger.addHandler(console)

    # Rotating file handler: 5MB max, 3 backups
    log_file = agent_cfg.get("log_file")
    if log_file:
        log_path = os.path.join(base_dir, log_file)
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    return logger
