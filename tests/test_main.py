"""Tests for the administrative command line."""

import getpass

import pytest
import yaml

import main
from config.config_manager import ConfigManager


@pytest.fixture
def config_path(tmp_path):
    """A configuration keeping every path inside tmp_path."""
    path = tmp_path / "settings.yaml"
    with open(path, 'w') as f:
        yaml.dump({
            'storage': {
                'db_path': str(tmp_path / 'data' / 'ruburu.db'),
                'images_dir': str(tmp_path / 'images'),
                'thumbs_dir': str(tmp_path / 'thumbs'),
            },
            'security': {'scrypt_n': 16},
            'logging': {'log_path': str(tmp_path / 'logs' / 'ruburu.log')},
        }, f)
    return path


@pytest.fixture
def services(config_path):
    return main.build_services(ConfigManager(config_path))


@pytest.fixture
def password(monkeypatch):
    monkeypatch.setattr(getpass, "getpass", lambda prompt="": "correct horse")


def run(services, *argv):
    return main.run_command(main.parse_arguments(list(argv)), services)


class TestCommands:
    """Tests for individual commands."""

    def test_parse_arguments(self):
        args = main.parse_arguments(['--log-level', 'DEBUG', 'ban', '10.0.0.0/8',
                                     '--reason', 'spam', '--hours', '2', '--as', 'root'])

        assert args.command == 'ban'
        assert args.subnet == '10.0.0.0/8'
        assert args.hours == 2.0
        assert args.login == 'root'
        assert args.log_level == 'DEBUG'

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.parse_arguments([])

    def test_create_user_board_and_ban(self, services, password, capsys):
        assert run(services, 'create-user', 'root', '--level', 'admin') == 0
        assert run(services, 'create-board', 'b', 'Random', '--as', 'root') == 0
        assert run(services, 'ban', '192.0.2.0/24', '--reason', 'spam', '--hours', '1', '--as', 'root') == 0

        assert services.boards.get_board('b').title == 'Random'
        assert services.moderation.find_active_ban('192.0.2.9').reason == 'spam'
        assert "Created /b/ - Random" in capsys.readouterr().out

    def test_create_user_password_mismatch(self, services, monkeypatch):
        answers = iter(["first password", "second password"])
        monkeypatch.setattr(getpass, "getpass", lambda prompt="": next(answers))

        assert run(services, 'create-user', 'root') == 1
        assert services.db.get_user_by_name('root') is None

    def test_list_threads(self, services, password, capsys):
        run(services, 'create-user', 'root', '--level', 'admin')
        run(services, 'create-board', 'b', 'Random', '--as', 'root')
        capsys.readouterr()

        assert run(services, 'list-threads', 'b') == 0
        assert capsys.readouterr().out == ""

    def test_purge_captchas(self, services, capsys):
        assert run(services, 'purge-captchas') == 0
        assert "Purged 0 captchas" in capsys.readouterr().out


class TestMain:
    """Tests for the entry point."""

    def test_init_db(self, config_path, tmp_path, capsys):
        assert main.main(['--config', str(config_path), 'init-db']) == 0

        assert (tmp_path / 'data' / 'ruburu.db').exists()
        assert (tmp_path / 'logs' / 'ruburu.log').exists()

    def test_board_error_exit_code(self, config_path, capsys):
        assert main.main(['--config', str(config_path), 'list-threads', 'nope']) == 1
        assert "Board /nope/ not found" in capsys.readouterr().err
