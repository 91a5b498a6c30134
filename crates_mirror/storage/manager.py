#!/usr/bin/env python3

import os
import shutil
import logging
import psutil
from typing import Dict, Optional, Any
from datetime import datetime
from ..config.manager import ConfigManager
from ..clone.executor import PARTIAL_SUFFIX

logger = logging.getLogger(__name__)

class StorageManager:
    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager
        self.config = config_manager.get_config()

    def ensure_directory_structure(self) -> Dict[str, bool]:
        """Create the directories a sync run writes into"""
        results = {}
        for directory in self.config.writable_directories():
            try:
                os.makedirs(directory, mode=0o755, exist_ok=True)
                results[directory] = True
                logger.debug(f"Ensured directory exists: {directory}")
            except OSError as e:
                logger.error(f"Failed to create directory {directory}: {e}")
                results[directory] = False

        return results

    def get_storage_info(self) -> Dict[str, Any]:
        """Disk usage of the output volume and the number of mirrored repositories"""
        storage_info = {
            'output_path': self.config.output_path,
            'total_repos': 0,
            'partial_clones': 0,
            'disk': self._get_disk_usage(self.config.output_path),
            'last_updated': datetime.now().isoformat()
        }

        if os.path.isdir(self.config.output_path):
            for entry in os.scandir(self.config.output_path):
                if not entry.is_dir(follow_symlinks=False):
                    continue
                if self._is_partial_clone(entry.name):
                    storage_info['partial_clones'] += 1
                elif not entry.name.startswith('.'):
                    storage_info['total_repos'] += 1

        return storage_info

    def _get_disk_usage(self, path: str) -> Optional[Dict[str, Any]]:
        probe = path
        # Walk up to the nearest existing ancestor so a fresh install still reports
        while not os.path.exists(probe):
            parent = os.path.dirname(probe)
            if parent == probe:
                return None
            probe = parent

        try:
            disk_usage = psutil.disk_usage(probe)
        except OSError as e:
            logger.error(f"Failed to get disk usage for {probe}: {e}")
            return None

        return {
            'path': probe,
            'total_size': disk_usage.total,
            'used_space': disk_usage.used,
            'free_space': disk_usage.free,
            'used_percent': disk_usage.percent,
        }

    def check_disk_space(self, required_gb: Optional[float] = None) -> Dict[str, Any]:
        """Check if there's enough free space on the output volume for syncing"""
        if required_gb is None:
            required_gb = self.config.min_free_gb

        disk = self._get_disk_usage(self.config.output_path)
        available_gb = disk['free_space'] / (1024**3) if disk else 0.0

        return {
            'sufficient_space': disk is not None and available_gb >= required_gb,
            'available_gb': available_gb,
            'required_gb': required_gb,
        }

    def _is_partial_clone(self, dirname: str) -> bool:
        return dirname.startswith('.') and dirname.endswith(PARTIAL_SUFFIX)

    def cleanup_partial_clones(self) -> Dict[str, Any]:
        """Remove staging directories left behind by interrupted clones"""
        cleanup_result = {
            'deleted_directories': 0,
            'errors': []
        }

        if not os.path.isdir(self.config.output_path):
            return cleanup_result

        for entry in os.scandir(self.config.output_path):
            if not entry.is_dir(follow_symlinks=False) or not self._is_partial_clone(entry.name):
                continue
            try:
                shutil.rmtree(entry.path)
                cleanup_result['deleted_directories'] += 1
                logger.info(f"Removed interrupted clone: {entry.path}")
            except OSError as e:
                error_msg = f"Failed to remove {entry.path}: {e}"
                logger.warning(error_msg)
                cleanup_result['errors'].append(error_msg)

        return cleanup_result
