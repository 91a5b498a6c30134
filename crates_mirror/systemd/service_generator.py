#!/usr/bin/env python3

import os
import sys
import logging
from typing import Dict, List, Optional
from ..config.manager import ConfigManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "crates-mirror-sync"

class SystemdServiceGenerator:
    """Oneshot service plus timer that re-run the sync.

    Packages that failed are retried by the next run, so a periodic timer is
    all the retry machinery the mirror needs.
    """

    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager
        self.config = config_manager.get_config()
        self.service_dir = "/etc/systemd/system"
        self.user_service_dir = os.path.expanduser("~/.config/systemd/user")

    def _get_systemd_directory(self, user_mode: bool) -> str:
        return self.user_service_dir if user_mode else self.service_dir

    def _generate_sync_command(self) -> str:
        command_parts = [
            sys.executable,
            "-m", "crates_mirror.main",
            "--config", self.config_manager.config_path,
            "sync"
        ]
        return " ".join(command_parts)

    def _read_write_paths(self) -> List[str]:
        # Everything else is read-only under ProtectSystem=strict
        paths = []
        for directory in self.config.writable_directories():
            if not any(directory == path or directory.startswith(path + os.sep) for path in paths):
                paths.append(directory)
        return paths

    def generate_service_unit(self, user_mode: bool = False) -> str:
        if user_mode:
            user_directive = ""
            wanted_by = "default.target"
        else:
            user_directive = "User=crates-mirror\nGroup=crates-mirror\n"
            wanted_by = "multi-user.target"

        working_directory = self.config.base_path
        read_write_paths = " ".join(self._read_write_paths())

        service_content = f"""[Unit]
Description=crates.io Repository Mirror Sync
After=network-online.target
Wants=network-online.target

[Service]
Type=oneshot
ExecStartPre=/usr/bin/mkdir -p {working_directory}
ExecStart={self._generate_sync_command()}
{user_directive}WorkingDirectory={working_directory}
Environment="GIT_TERMINAL_PROMPT=0"
StandardOutput=journal
StandardError=journal
SyslogIdentifier={SERVICE_NAME}

# Security settings
NoNewPrivileges=true
ProtectSystem=strict
ReadWritePaths={read_write_paths}
PrivateTmp=true

[Install]
WantedBy={wanted_by}
"""

        return service_content

    def generate_timer_unit(self, schedule: Optional[str] = None) -> str:
        on_calendar = self._schedule_to_systemd_calendar(schedule or self.config.sync_schedule)

        timer_content = f"""[Unit]
Description=Timer for crates.io Repository Mirror Sync
Requires={SERVICE_NAME}.service

[Timer]
OnCalendar={on_calendar}
RandomizedDelaySec=1800
Persistent=true

[Install]
WantedBy=timers.target
"""

        return timer_content

    def _schedule_to_systemd_calendar(self, schedule: str) -> str:
        schedule_mapping = {
            "hourly": "hourly",
            "daily": "daily",
            "weekly": "weekly",
            "monthly": "monthly",
            "twice-daily": "*-*-* 06,18:00:00",
        }

        return schedule_mapping.get(schedule, "daily")

    def create_service_files(self, user_mode: bool = False, enable_timer: bool = True) -> Dict[str, Optional[str]]:
        target_dir = self._get_systemd_directory(user_mode)
        os.makedirs(target_dir, exist_ok=True)

        service_file = os.path.join(target_dir, f"{SERVICE_NAME}.service")
        timer_file = os.path.join(target_dir, f"{SERVICE_NAME}.timer")

        try:
            with open(service_file, 'w') as f:
                f.write(self.generate_service_unit(user_mode))
            logger.info(f"Created service file: {service_file}")

            if enable_timer:
                with open(timer_file, 'w') as f:
                    f.write(self.generate_timer_unit())
                logger.info(f"Created timer file: {timer_file}")

            return {
                'service_file': service_file,
                'timer_file': timer_file if enable_timer else None,
                'service_name': SERVICE_NAME
            }

        except PermissionError as e:
            error_msg = "Permission denied creating service files. Try running with sudo or use --user mode."
            logger.error(error_msg)
            raise PermissionError(error_msg) from e
