#!/usr/bin/env python3

import os
import logging
from typing import Dict, Any

from ..config.manager import ConfigManager
from ..state.store import StateStore
from ..sync.models import SyncStatus, StateEntry

logger = logging.getLogger(__name__)

class MirrorVerifier:
    """Cross-checks the state store against the mirror directories on disk"""

    def __init__(self, config_manager: ConfigManager, state_store: StateStore):
        self.config_manager = config_manager
        self.state_store = state_store

    def verify_entry(self, entry: StateEntry) -> Dict[str, Any]:
        destination = self.config_manager.get_destination_path(entry.name)
        exists = os.path.isdir(destination)

        result = {
            'name': entry.name,
            'status': entry.status.value,
            'path': destination,
            'result': 'verified',
            'details': ''
        }

        if entry.status is SyncStatus.CLONED:
            if not exists:
                result['result'] = 'missing'
                result['details'] = 'Marked cloned but the directory does not exist'
            elif not os.listdir(destination):
                result['result'] = 'failed'
                result['details'] = 'Marked cloned but the directory is empty'
            elif not os.path.exists(os.path.join(destination, '.git')):
                result['result'] = 'failed'
                result['details'] = 'Directory is not a git repository'
        elif exists:
            # Skipped on future runs even though the store disagrees
            result['result'] = 'untracked'
            result['details'] = f"Directory exists but status is {entry.status.value}"

        return result

    def verify_all(self) -> Dict[str, Any]:
        results = {
            'total': 0,
            'verified': 0,
            'missing': 0,
            'failed': 0,
            'untracked': 0,
            'details': []
        }

        for entry in self.state_store.entries():
            result = self.verify_entry(entry)
            results['total'] += 1
            results[result['result']] += 1
            if result['result'] != 'verified':
                logger.warning(f"{entry.name}: {result['details']}")
                results['details'].append(result)

        return results

    def get_verification_summary(self, results: Dict[str, Any]) -> str:
        return (
            f"Verification: {results['total']} entries - "
            f"{results['verified']} verified, {results['failed']} failed, "
            f"{results['missing']} missing, {results['untracked']} untracked"
        )
