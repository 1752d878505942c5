import os
from typing import Optional

import requests
import structlog

from yamf.config import config
from yamf.exceptions import InstallError

log = structlog.get_logger("yamf.install")

DOWNLOAD_TIMEOUT = 60


def default_runner_path() -> str:
    """ Return the path the runner jar is installed to, relative paths are taken from the package root """
    jar = config["runner", "jar"]
    if os.path.isabs(jar):
        return jar
    return os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), jar)


def install(destination: Optional[str] = None, force: bool = False) -> str:
    """
    Download the standalone JUnit console runner to destination (see
    default_runner_path) unless it is already there, and return its path.
    """
    destination = destination or default_runner_path()
    if os.path.isfile(destination) and not force:
        log.info("junit runner already installed", path=destination)
        return destination
    url = config["runner", "download_url"]
    log.info("downloading junit runner", url=url, path=destination)
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise InstallError(f"cannot download junit runner from {url}: {e}") from e
    try:
        os.makedirs(os.path.dirname(os.path.abspath(destination)), exist_ok=True)
        with open(destination, "wb") as f:
            f.write(response.content)
    except OSError as e:
        raise InstallError(f"cannot write junit runner to {destination}: {e}") from e
    return destination
