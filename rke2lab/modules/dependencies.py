"""Install kubectl on the orchestrating host when it is missing."""
import logging
import shutil

import requests

from rke2lab.utils.process import run_command

logger = logging.getLogger("rke2lab.dependencies")

KUBERNETES_APT_MINOR = "v1.31"
KUBERNETES_APT_REPO = f"https://pkgs.k8s.io/core:/stable:/{KUBERNETES_APT_MINOR}/deb/"
KUBERNETES_APT_KEY_URL = f"{KUBERNETES_APT_REPO}Release.key"
KEYRING_DIR = "/etc/apt/keyrings"
KEYRING_PATH = f"{KEYRING_DIR}/kubernetes-apt-keyring.gpg"
SOURCES_LIST = "/etc/apt/sources.list.d/kubernetes.list"

APT_PREREQUISITES = ["apt-transport-https", "ca-certificates", "curl", "gnupg"]


def kubectl_available() -> bool:
    return shutil.which("kubectl") is not None


def ensure_kubectl(timeout: int = 30) -> bool:
    """
    Install kubectl from the Kubernetes apt repository if it is not on PATH.
    Returns True if an installation was performed.
    """
    if kubectl_available():
        logger.debug("kubectl already installed")
        return False

    logger.info("📦 Installing kubectl...")
    run_command(["sudo", "apt-get", "update", "-y"], capture=False)
    run_command(["sudo", "apt-get", "install", "-y", *APT_PREREQUISITES], capture=False)

    response = requests.get(KUBERNETES_APT_KEY_URL, timeout=timeout)
    response.raise_for_status()

    run_command(["sudo", "mkdir", "-p", "-m", "755", KEYRING_DIR])
    # gpg reads the armored key from stdin, so the key never touches a temp file
    run_command(
        ["sudo", "gpg", "--dearmor", "--yes", "-o", KEYRING_PATH],
        input=response.text,
    )
    source_line = f"deb [signed-by={KEYRING_PATH}] {KUBERNETES_APT_REPO} /\n"
    run_command(["sudo", "tee", SOURCES_LIST], input=source_line)

    run_command(["sudo", "apt-get", "update", "-y"], capture=False)
    run_command(["sudo", "apt-get", "install", "-y", "kubectl"], capture=False)
    logger.info("✅ kubectl installed")
    return True
