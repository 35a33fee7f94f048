"""systemd unit installer for running the agent as a service."""

from __future__ import annotations

import getpass
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

from tada.logging import get_logger

log = get_logger("tada.install")

DEFAULT_UNIT_DIR = "/etc/systemd/system"


class InstallError(Exception):
    """Writing the unit file or a systemctl step failed."""


@dataclass
class ServiceSpec:
    """What the generated unit runs and as whom."""

    name: str = "tada"
    port: int = 4000
    user: str = ""
    config_path: str = ""
    working_dir: str = ""
    python: str = sys.executable

    def __post_init__(self) -> None:
        if not self.user:
            self.user = os.environ.get("USER") or getpass.getuser()
        if not self.working_dir:
            self.working_dir = os.getcwd()
        if not self.config_path:
            self.config_path = str(Path(self.working_dir) / "config.toml")


def render_unit(spec: ServiceSpec) -> str:
    exec_start = (
        f"{spec.python} -m tada --port={spec.port} --config={Path(spec.config_path).resolve()}"
    )
    return f"""[Unit]
Description=TADA! a tiny deploy agent
After=network.target
Wants=network-online.target

[Service]
Type=simple
User={spec.user}
WorkingDirectory={spec.working_dir}
ExecStart={exec_start}
Restart=always
RestartSec=5

Environment=TADA_ENVIRONMENT=production

# Security options
NoNewPrivileges=true
PrivateTmp=true

[Install]
WantedBy=multi-user.target
"""


def _systemctl(*args: str) -> str:
    cmd = ["systemctl", *args]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as exc:
        raise InstallError(f"{' '.join(cmd)} failed: {exc}") from exc
    if proc.returncode != 0:
        raise InstallError(f"{' '.join(cmd)} failed (rc={proc.returncode}): {proc.stderr.strip()}")
    return proc.stdout


def install_service(
    spec: ServiceSpec,
    unit_dir: str = DEFAULT_UNIT_DIR,
    start: bool = True,
) -> Path:
    """Write the unit file, reload systemd, enable and (optionally) start it.

    Returns the path of the written unit file.
    """
    unit_path = Path(unit_dir) / f"{spec.name}.service"
    try:
        unit_path.parent.mkdir(parents=True, exist_ok=True)
        unit_path.write_text(render_unit(spec), encoding="utf-8")
    except OSError as exc:
        raise InstallError(f"Cannot write {unit_path}: {exc} (try running with sudo)") from exc
    log.info("service_unit_written", path=str(unit_path))

    _systemctl("daemon-reload")
    _systemctl("enable", f"{spec.name}.service")
    log.info("service_enabled", service=spec.name)

    if start:
        _systemctl("start", f"{spec.name}.service")
        log.info("service_started", service=spec.name)
    else:
        log.info("service_start_skipped", service=spec.name)
    return unit_path
