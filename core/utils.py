# Purpose: Utility functions shared by the analytics engine and the batch runner:
# data folder resolution and centralized logging setup.

"""
Utility functions for the analytics engine.
"""
import os
import logging
import logging.config
import copy
from typing import Optional

logger = logging.getLogger(__name__)


def setup_logging(log_dir: Optional[str] = None, console_level: str = "INFO") -> str:
    """Applies config.LOGGING_CONFIG (console + rotating file handler).

    Args:
        log_dir: Folder for analytics.log. Defaults to the folder configured in settings.yaml.
        console_level: Level for the console handler.

    Returns:
        str: The log file path in use.
    """
    from core import config

    logging_config = copy.deepcopy(config.LOGGING_CONFIG)
    file_handler = logging_config["handlers"]["file"]
    if log_dir:
        file_handler["filename"] = os.path.join(log_dir, "analytics.log")
    logging_config["handlers"]["console"]["level"] = console_level

    log_path = file_handler["filename"]
    try:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
    except OSError as e:
        # Console logging still works without the file handler
        logging_config["handlers"].pop("file")
        logging_config["loggers"][""]["handlers"] = ["console"]
        logging.config.dictConfig(logging_config)
        logger.error(f"Could not create log folder for {log_path}: {e}", exc_info=True)
        return ""

    logging.config.dictConfig(logging_config)
    logger.info(f"Logging configured (console: {console_level}, file: {log_path})")
    return log_path


def get_data_folder_path(app_root_path: Optional[str] = None) -> str:
    """
    Retrieves the data folder path, prioritizing the environment, then settings.yaml, then a default.

    Resolves the path to an absolute path relative to the provided
    app_root_path or the project root.

    Args:
        app_root_path (str, optional): The root path of the application or script.
                                      If None, config.BASE_DIR is used. Defaults to None.

    Returns:
        str: The absolute path to the data folder.

    Raises:
        FileNotFoundError: If the resolved folder does not exist.
    """
    from core import config
    from core.settings_loader import get_app_config

    env_value = os.environ.get(config.DATA_FOLDER_ENV_VAR)
    if env_value:
        chosen_path = env_value.strip()
        chosen_path_source = f"environment ({config.DATA_FOLDER_ENV_VAR})"
    else:
        data_folder_name = get_app_config().get("data_folder")
        if data_folder_name:
            chosen_path = str(data_folder_name).strip()
            chosen_path_source = "settings (data_folder)"
        else:
            chosen_path = config.DEFAULT_DATA_FOLDER
            chosen_path_source = "default"

    base_path = app_root_path or str(config.BASE_DIR)

    if os.path.isabs(chosen_path):
        absolute_path = chosen_path
    else:
        absolute_path = os.path.abspath(os.path.join(base_path, chosen_path))
    logger.info(f"Resolved data folder from {chosen_path_source} ('{chosen_path}') to: {absolute_path}")

    if not os.path.isdir(absolute_path):
        error_msg = (
            f"Configured data folder does not exist or is not a directory: {absolute_path}. "
            f"Please create the folder or update {config.DATA_FOLDER_ENV_VAR} / data_folder setting."
        )
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    return absolute_path
