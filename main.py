"""ruburu Administrative Entry Point.

Command-line tool for operating a ruburu image-board: it loads the
configuration, sets up logging, wires the core services together and runs
one administrative command (database setup, boards, accounts, bans).
"""

import sys
import argparse
import getpass
import logging
from dataclasses import dataclass
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

# Import configuration
from config.config_manager import ConfigManager

# Import core components
from core.captcha import CaptchaGenerator
from core.crypto_manager import CryptoManager
from core.db_manager import DBManager
from core.error_handler import BoardError, get_error_handler
from core.image_store import ImageStore
from core.markup import MarkupRenderer

# Import logic layer
from logic.auth_manager import AuthManager
from logic.board_manager import BoardManager
from logic.moderation_manager import ModerationManager
from logic.post_manager import PostManager
from logic.thread_manager import ThreadManager


logger = logging.getLogger(__name__)


def setup_logging(log_level: str, log_path: Path, max_bytes: int = 10485760, backup_count: int = 5):
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_path: Path to log file
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files kept
    """
    # Ensure log directory exists
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )

    logger.info(f"Logging initialized at level {log_level}")
    logger.info(f"Log file: {log_path}")


@dataclass
class Services:
    """The wired service graph used by commands and by a web front end."""
    config: ConfigManager
    db: DBManager
    auth: AuthManager
    boards: BoardManager
    threads: ThreadManager
    moderation: ModerationManager
    images: ImageStore
    posts: PostManager


def build_services(config_manager: ConfigManager) -> Services:
    """
    Construct every manager from configuration.

    The database schema is created if missing.
    """
    storage_config = config_manager.get_storage_config()
    images_config = config_manager.get_images_config()
    captcha_config = config_manager.get_captcha_config()
    security_config = config_manager.get_security_config()

    db_path = config_manager.expand_path(storage_config.db_path)
    db_manager = DBManager(db_path)
    db_manager.initialize_database()

    crypto_manager = CryptoManager(
        n=security_config.scrypt_n,
        r=security_config.scrypt_r,
        p=security_config.scrypt_p,
    )
    auth_manager = AuthManager(crypto_manager, db_manager, session_ttl=security_config.session_ttl)
    board_manager = BoardManager(db_manager, auth_manager)
    thread_manager = ThreadManager(db_manager, MarkupRenderer())
    moderation_manager = ModerationManager(
        db_manager,
        auth_manager,
        CaptchaGenerator(
            length=captcha_config.length,
            width=captcha_config.width,
            height=captcha_config.height,
        ),
    )
    image_store = ImageStore(
        db_manager,
        config_manager.expand_path(storage_config.images_dir),
        config_manager.expand_path(storage_config.thumbs_dir),
        thumbnail_size=images_config.thumbnail_size,
        max_upload_size=storage_config.max_upload_size,
        allowed_formats=tuple(images_config.allowed_formats),
    )
    post_manager = PostManager(
        board_manager,
        thread_manager,
        moderation_manager,
        image_store,
        get_error_handler(),
    )

    return Services(
        config=config_manager,
        db=db_manager,
        auth=auth_manager,
        boards=board_manager,
        threads=thread_manager,
        moderation=moderation_manager,
        images=image_store,
        posts=post_manager,
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog='ruburu',
        description='ruburu - anonymous image-board administration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the database and the first administrator
  ruburu init-db
  ruburu create-user alice --level admin

  # Create a board (prompts for alice's password)
  ruburu create-board b Random --as alice

  # Ban a subnet for a day
  ruburu ban 203.0.113.0/24 --reason spam --hours 24 --as alice
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        metavar='PATH',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override logging level from config'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('init-db', help='Create the database schema')

    create_board = commands.add_parser('create-board', help='Create a board')
    create_board.add_argument('name')
    create_board.add_argument('title')
    create_board.add_argument('--as', dest='login', required=True, metavar='USER',
                              help='Administrator account to act as')

    create_user = commands.add_parser('create-user', help='Create an administrative account')
    create_user.add_argument('name')
    create_user.add_argument('--level', choices=['admin', 'mod'], default='mod')

    ban = commands.add_parser('ban', help='Ban an address or subnet')
    ban.add_argument('subnet')
    ban.add_argument('--reason', required=True)
    ban.add_argument('--hours', type=float, required=True)
    ban.add_argument('--as', dest='login', required=True, metavar='USER',
                     help='Moderator account to act as')

    list_threads = commands.add_parser('list-threads', help='List threads of a board, most recently bumped first')
    list_threads.add_argument('board')

    commands.add_parser('purge-captchas', help='Delete captchas that were never answered')

    return parser.parse_args(argv)


def _login(services: Services, name: str) -> str:
    password = getpass.getpass(f"Password for {name}: ")
    return services.auth.login(name, password).session_id


def run_command(args: argparse.Namespace, services: Services) -> int:
    """Run the selected command. Returns the process exit code."""
    if args.command == 'init-db':
        print(f"Database ready at {services.db.db_path}")

    elif args.command == 'create-user':
        password = getpass.getpass(f"Password for {args.name}: ")
        if password != getpass.getpass("Repeat password: "):
            print("Passwords do not match", file=sys.stderr)
            return 1
        services.auth.create_user(args.name, password, args.level)
        print(f"Created {args.level} {args.name}")

    elif args.command == 'create-board':
        session_id = _login(services, args.login)
        try:
            board = services.boards.create_board(args.name, args.title, session_id)
        finally:
            services.auth.logout(session_id)
        print(f"Created /{board.name}/ - {board.title}")

    elif args.command == 'ban':
        session_id = _login(services, args.login)
        try:
            ban = services.moderation.ban_address(
                args.subnet, args.reason, timedelta(hours=args.hours), session_id
            )
        finally:
            services.auth.logout(session_id)
        print(f"Banned {ban.ip} until {ban.expires_at:%Y-%m-%d %H:%M} UTC")

    elif args.command == 'list-threads':
        for post in services.threads.list_threads(args.board):
            subject = post.title or (post.plaintext_content or '')[:60]
            print(f"{post.id:>8}  {post.posted_at:%Y-%m-%d %H:%M}  {subject}")

    elif args.command == 'purge-captchas':
        count = services.moderation.purge_expired_captchas()
        print(f"Purged {count} captchas")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    config_path = Path(args.config).expanduser() if args.config else None
    config_manager = ConfigManager(config_path)

    logging_config = config_manager.get_logging_config()
    setup_logging(
        args.log_level or logging_config.level,
        config_manager.expand_path(logging_config.log_path),
        logging_config.max_log_size,
        logging_config.backup_count,
    )

    try:
        services = build_services(config_manager)
        return run_command(args, services)
    except BoardError as e:
        context = get_error_handler().handle_error(e, args.command)
        print(context.user_message, file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
