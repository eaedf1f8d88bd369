"""Multipass VM lifecycle: launch, exec, info, delete, purge."""
import json
import logging
import subprocess
from typing import Any, Dict, List, Optional, Sequence

from rke2lab.config import VMSize
from rke2lab.errors import CommandError, RKE2LabError
from rke2lab.utils import BOOT_WAIT, RetryPolicy
from rke2lab.utils.process import run_command

logger = logging.getLogger("rke2lab.multipass")


class Multipass:
    """Thin wrapper around the multipass CLI."""

    def __init__(self, binary: str = "multipass", runner=run_command):
        self.binary = binary
        self.run = runner

    def launch(self, name: str, size: VMSize, timeout: int = 600, image: Optional[str] = None) -> None:
        """Create a VM and block until multipass reports it launched."""
        cmd = [self.binary, "launch"]
        if image:
            cmd.append(image)
        cmd += [
            "--name", name,
            "--cpus", str(size.cpus),
            "--memory", size.memory,
            "--disk", size.disk,
            "--timeout", str(timeout),
        ]
        logger.info(f"🚀 Launching {name} ({size.cpus} CPU, {size.memory}, {size.disk})...")
        self.run(cmd, capture=False)
        logger.info(f"✅ Launched: {name}")

    def exec(
        self,
        name: str,
        argv: Sequence[str],
        check: bool = True,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Run argv inside the VM. Arguments are passed through, never joined into shell text."""
        return self.run([self.binary, "exec", name, "--", *argv], check=check, input=input, timeout=timeout)

    def info(self, name: str) -> Dict[str, Any]:
        result = self.run([self.binary, "info", name, "--format", "json"])
        data = json.loads(result.stdout)
        try:
            return data["info"][name]
        except KeyError:
            raise RKE2LabError(f"multipass info returned no data for {name}")

    def resolve_address(self, name: str) -> str:
        """Return the first IPv4 address of the VM."""
        all_ips = self.info(name).get("ipv4", [])
        # Convert to list if it's a string
        ip_list = [all_ips] if isinstance(all_ips, str) else all_ips
        valid_ips = [ip for ip in ip_list if ip]
        if not valid_ips:
            raise RKE2LabError(f"No IPv4 address found for {name}")
        logger.debug(f"{name} has IP {valid_ips[0]}")
        return valid_ips[0]

    def state(self, name: str) -> Optional[str]:
        """Multipass state of the instance, or None if it does not exist."""
        try:
            return self.info(name).get("state")
        except (CommandError, RKE2LabError, ValueError):
            return None

    def list_instances(self) -> List[str]:
        result = self.run([self.binary, "list", "--format", "json"])
        data = json.loads(result.stdout)
        return [item["name"] for item in data.get("list", [])]

    def cloud_init_done(self, name: str, timeout: Optional[float] = None) -> bool:
        """One readiness check. A cloud-init that outlives the timeout counts as not done."""
        try:
            # --wait blocks until cloud-init finishes or errors; its exit code is ignored
            self.exec(name, ["cloud-init", "status", "--wait"], check=False, timeout=timeout)
            result = self.exec(name, ["cloud-init", "status"], check=False, timeout=timeout)
        except CommandError as e:
            if e.returncode != -1:
                raise
            logger.debug(f"cloud-init check on {name} timed out: {e}")
            return False
        return "status: done" in (result.stdout or "")

    def wait_for_cloud_init(self, name: str, policy: RetryPolicy = BOOT_WAIT) -> bool:
        """Poll cloud-init on the VM. Never fails the run; returns False on timeout."""
        logger.info(f"⏳ Waiting for cloud-init to complete on {name}...")
        # each blocking check is bounded by the whole boot budget
        timeout = max(policy.interval * policy.max_attempts, 1.0)
        if policy.poll(lambda: self.cloud_init_done(name, timeout)):
            logger.info(f"✅ cloud-init done on {name}")
            return True
        logger.warning(f"⚠️  cloud-init may not have reported 'done' on {name}, continuing anyway.")
        return False

    def delete(self, name: str) -> bool:
        """Best-effort delete; never raises."""
        result = self._quiet([self.binary, "delete", name])
        if result:
            logger.info(f"🗑️  Deleted {name}")
        return result

    def purge(self) -> bool:
        return self._quiet([self.binary, "purge"])

    def _quiet(self, cmd: List[str]) -> bool:
        try:
            result = self.run(cmd, check=False)
        except CommandError as e:
            logger.debug(f"Ignoring failure of {' '.join(cmd)}: {e}")
            return False
        if result.returncode != 0:
            logger.debug(f"{' '.join(cmd)} exited with {result.returncode} (ignored)")
            return False
        return True
