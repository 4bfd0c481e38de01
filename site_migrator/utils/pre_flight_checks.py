import logging

import requests

from ..config import MediaConfig, MigrationConfig
from .errors import MigrationError

logger = logging.getLogger(__name__)


class PreFlightCheckError(MigrationError):
    """Custom exception for pre-flight check failures."""
    pass


def check_media_backend(media: MediaConfig) -> str:
    """
    Verifies that the selected media backend has its credentials.

    Args:
        media: The ``media`` configuration section.

    Returns:
        The effective media mode (``blob``, ``s3`` or ``none``).

    Raises:
        PreFlightCheckError: If a required setting is missing.
    """
    mode = media.resolved_mode
    if mode == "blob" and not media.blob_token:
        raise PreFlightCheckError("MEDIA_MODE=blob requires BLOB_READ_WRITE_TOKEN to be set.")
    if mode == "s3":
        if not media.s3_bucket:
            raise PreFlightCheckError("MEDIA_MODE=s3 requires S3_BUCKET to be set.")
        if not media.s3_region:
            raise PreFlightCheckError("MEDIA_MODE=s3 requires AWS_REGION to be set.")
    return mode


def check_url_reachable(url: str, *, what: str, timeout: float = 10) -> None:
    """
    Verifies that ``url`` answers with a non-error status.

    Raises:
        PreFlightCheckError: On a network error or an HTTP error status.
    """
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        if status == 404:
            raise PreFlightCheckError(f"{what} not found at {url} (404).")
        raise PreFlightCheckError(f"Unexpected error while checking {what} at {url}: {e}")
    except requests.RequestException as e:
        raise PreFlightCheckError(f"Network error while connecting to {what} at {url}: {e}")


def run_pre_flight_checks(config: MigrationConfig, *, wordpress: bool = True, media: bool = True) -> None:
    """
    Verifies that the environment is ready before a run starts.

    Args:
        config: The loaded configuration.
        wordpress: Check that the WordPress REST API answers.
        media: Check the credentials of the selected media backend.

    Raises:
        PreFlightCheckError: If any check fails.
    """
    logger.info("Running pre-flight checks...")

    if media:
        mode = check_media_backend(config.media)
        logger.info("Media mode: %s", mode)

    if wordpress:
        check_url_reachable(f"{config.legacy.wp_base_url}/wp-json/", what="WordPress REST API")

    logger.info("Pre-flight checks passed successfully.")
