#!/usr/bin/env python3

import os
import pytest
import argparse
from unittest.mock import Mock, patch

from crates_mirror.main import (
    setup_logging, create_argument_parser, build_orchestrator, main
)
from crates_mirror.state.store import SqliteStateStore
from crates_mirror.sync.orchestrator import SyncOrchestrator, SyncReport
from crates_mirror.sync.models import IndexUnavailable, SyncStatus


class TestLoggingSetup:
    """Test logging configuration"""

    @patch('logging.basicConfig')
    def test_setup_logging_writes_to_given_file(self, mock_basicConfig, temp_dir):
        log_file = os.path.join(temp_dir, "logs", "crates-mirror.log")

        with patch('logging.FileHandler') as mock_file_handler:
            setup_logging("DEBUG", log_file)

        assert os.path.isdir(os.path.join(temp_dir, "logs"))
        mock_file_handler.assert_called_once_with(log_file)
        assert mock_basicConfig.call_args[1]['level'] == 10

    @patch('logging.basicConfig')
    def test_setup_logging_lowercase_level(self, mock_basicConfig, temp_dir):
        with patch('logging.FileHandler'):
            setup_logging("warning", os.path.join(temp_dir, "crates-mirror.log"))

        assert mock_basicConfig.call_args[1]['level'] == 30

    @patch('logging.basicConfig')
    def test_setup_logging_uses_configured_log_path(self, mock_basicConfig, real_config_manager):
        config = real_config_manager.get_config()

        with patch('logging.FileHandler') as mock_file_handler:
            setup_logging(config.log_level, config.log_path)

        mock_file_handler.assert_called_once_with(config.log_path)
        assert config.log_path.startswith(config.base_path + os.sep)


class TestArgumentParser:
    """Test command-line argument parsing"""

    def test_parser_defaults(self):
        args = create_argument_parser().parse_args([])

        assert args.config is None
        assert args.log_level is None
        assert args.command is None

    def test_parser_sync_defaults(self):
        args = create_argument_parser().parse_args(["sync"])

        assert args.command == "sync"
        assert args.output is None
        assert args.delay_ms is None
        assert args.no_refresh is False
        assert args.limit is None

    def test_parser_sync_options(self):
        args = create_argument_parser().parse_args(
            ["sync", "-o", "/data/repos", "-d", "2000", "--no-refresh", "--limit", "5"]
        )

        assert args.output == "/data/repos"
        assert args.delay_ms == 2000
        assert args.no_refresh is True
        assert args.limit == 5

    def test_parser_rejects_negative_delay(self):
        with pytest.raises(SystemExit):
            create_argument_parser().parse_args(["sync", "--delay-ms", "-5"])

    def test_parser_status_verify(self):
        args = create_argument_parser().parse_args(["status", "--verify"])
        assert args.verify is True

    def test_parser_setup_systemd(self):
        args = create_argument_parser().parse_args(["setup-systemd", "--user", "--no-timer"])
        assert args.user is True
        assert args.no_timer is True

    def test_parser_is_argparse(self):
        parser = create_argument_parser()
        assert isinstance(parser, argparse.ArgumentParser)
        assert "crates.io" in parser.description


class TestBuildOrchestrator:
    def test_build_orchestrator_from_config(self, real_config_manager, memory_store):
        config = real_config_manager.get_config()

        orchestrator = build_orchestrator(real_config_manager, memory_store)

        assert isinstance(orchestrator, SyncOrchestrator)
        assert orchestrator.output_path == config.output_path
        assert orchestrator.state_store is memory_store
        assert orchestrator.index_source.cache_path == config.index_path
        assert orchestrator.metadata_client.rate_limiter.delay_seconds == 0


class TestMain:
    """Test command routing in main()"""

    @pytest.fixture(autouse=True)
    def no_logging_setup(self):
        with patch('crates_mirror.main.setup_logging'):
            yield

    @pytest.fixture(autouse=True)
    def plenty_of_disk_space(self):
        space = {'sufficient_space': True, 'available_gb': 100.0, 'required_gb': 1.0}
        with patch('crates_mirror.main.StorageManager.check_disk_space', return_value=space):
            yield

    @pytest.fixture
    def config_path(self, real_config_manager):
        return real_config_manager.config_path

    def test_main_without_command(self, config_path):
        assert main(["--config", config_path]) == 1

    def test_main_bad_config(self, temp_dir):
        config_path = os.path.join(temp_dir, "bad.yaml")
        with open(config_path, 'w') as f:
            f.write("unknown_key: 1\n")

        assert main(["--config", config_path, "status"]) == 1

    def test_sync_success(self, config_path):
        orchestrator = Mock()
        orchestrator.run.return_value = SyncReport(processed=1, cloned=1)

        with patch('crates_mirror.main.build_orchestrator', return_value=orchestrator):
            exit_code = main(["--config", config_path, "sync", "--limit", "3"])

        assert exit_code == 0
        orchestrator.run.assert_called_once_with(refresh=True, limit=3)
        orchestrator.metadata_client.close.assert_called_once()

    def test_sync_no_refresh(self, config_path):
        orchestrator = Mock()
        orchestrator.run.return_value = SyncReport()

        with patch('crates_mirror.main.build_orchestrator', return_value=orchestrator):
            main(["--config", config_path, "sync", "--no-refresh"])

        orchestrator.run.assert_called_once_with(refresh=False, limit=None)

    def test_sync_overrides_output_and_delay(self, config_path, temp_dir):
        output = os.path.join(temp_dir, "elsewhere")
        captured = {}

        def capture(config_manager, state_store):
            captured['config'] = config_manager.get_config()
            orchestrator = Mock()
            orchestrator.run.return_value = SyncReport()
            return orchestrator

        with patch('crates_mirror.main.build_orchestrator', side_effect=capture):
            main(["--config", config_path, "sync", "--output", output, "--delay-ms", "1500"])

        assert captured['config'].output_path == output
        assert captured['config'].delay_ms == 1500
        assert os.path.isdir(output)

    def test_sync_index_unavailable(self, config_path):
        orchestrator = Mock()
        orchestrator.run.side_effect = IndexUnavailable("could not update crates.io index")

        with patch('crates_mirror.main.build_orchestrator', return_value=orchestrator):
            assert main(["--config", config_path, "sync"]) == 1

        orchestrator.metadata_client.close.assert_called_once()

    def test_sync_insufficient_disk_space(self, config_path):
        space = {'sufficient_space': False, 'available_gb': 0.2, 'required_gb': 1.0}

        with patch('crates_mirror.main.StorageManager.check_disk_space', return_value=space), \
             patch('crates_mirror.main.build_orchestrator') as mock_build:
            assert main(["--config", config_path, "sync"]) == 1

        mock_build.assert_not_called()

    def test_sync_removes_partial_clones(self, config_path, real_config_manager):
        config = real_config_manager.get_config()
        partial = os.path.join(config.output_path, ".serde.partial")
        os.makedirs(partial)
        orchestrator = Mock()
        orchestrator.run.return_value = SyncReport()

        with patch('crates_mirror.main.build_orchestrator', return_value=orchestrator):
            main(["--config", config_path, "sync"])

        assert not os.path.exists(partial)

    def test_sync_keyboard_interrupt(self, config_path):
        orchestrator = Mock()
        orchestrator.run.side_effect = KeyboardInterrupt

        with patch('crates_mirror.main.build_orchestrator', return_value=orchestrator):
            assert main(["--config", config_path, "sync"]) == 130

    def test_status(self, config_path, real_config_manager, capsys):
        config = real_config_manager.get_config()
        store = SqliteStateStore(config.database_path)
        store.set_status("norepo", SyncStatus.NO_REPO)
        store.upsert_pending("serde", "https://github.com/serde-rs/serde")
        store.set_status("serde", SyncStatus.CLONED)
        store.close()

        assert main(["--config", config_path, "status", "--verify"]) == 0

        output = capsys.readouterr().out
        assert "no_repo" in output
        assert "1 missing" in output
        assert "serde" in output

    def test_unwritable_log_file(self, config_path):
        with patch('crates_mirror.main.setup_logging', side_effect=OSError(30, "Read-only file system")):
            assert main(["--config", config_path, "status"]) == 1

    def test_status_reports_unknown_entries(self, config_path, real_config_manager, capsys):
        config = real_config_manager.get_config()
        store = SqliteStateStore(config.database_path)
        store._conn.execute("INSERT INTO crates VALUES ('odd', NULL, 'archived')")
        store._conn.commit()
        store.close()

        assert main(["--config", config_path, "status"]) == 0
        assert "unknown" in capsys.readouterr().out

    def test_storage_requires_flag(self, config_path):
        assert main(["--config", config_path, "storage"]) == 1

    def test_storage_info(self, config_path, capsys):
        assert main(["--config", config_path, "storage", "--info"]) == 0
        assert "Mirrored repositories: 0" in capsys.readouterr().out

    def test_storage_cleanup(self, config_path, capsys):
        assert main(["--config", config_path, "storage", "--cleanup"]) == 0
        assert "Directories deleted: 0" in capsys.readouterr().out

    def test_setup_systemd_user(self, config_path, temp_dir):
        with patch('crates_mirror.main.SystemdServiceGenerator') as mock_generator:
            mock_generator.return_value.create_service_files.return_value = {
                'service_file': os.path.join(temp_dir, "crates-mirror-sync.service"),
                'timer_file': os.path.join(temp_dir, "crates-mirror-sync.timer"),
                'service_name': "crates-mirror-sync"
            }
            assert main(["--config", config_path, "setup-systemd", "--user"]) == 0

        mock_generator.return_value.create_service_files.assert_called_once_with(
            user_mode=True, enable_timer=True
        )

    def test_setup_systemd_permission_denied(self, config_path):
        with patch('crates_mirror.main.SystemdServiceGenerator') as mock_generator:
            mock_generator.return_value.create_service_files.side_effect = PermissionError("denied")
            assert main(["--config", config_path, "setup-systemd"]) == 1
