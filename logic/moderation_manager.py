"""
Moderation Manager for the ruburu image-board.

Guards the write path:
- Address and subnet bans with an expiry
- Single-use captcha challenges issued per page view
"""

import base64
import ipaddress
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from core.captcha import CaptchaGenerator
from core.db_manager import DBManager
from core.error_handler import (
    Banned,
    MissingOrInvalidCaptchaID,
    StorageFailure,
    ValidationError,
)
from logic.auth_manager import AuthManager
from models.database import Ban, Captcha


logger = logging.getLogger(__name__)


@dataclass
class CaptchaChallenge:
    """A challenge handed to a client. The solution stays server-side."""
    id: str
    png: bytes

    @property
    def data_uri(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")


class ModerationManager:
    """
    Manages bans and captchas.

    Responsibilities:
    - Find the active ban covering an address
    - Create bans on behalf of a moderator
    - Issue, verify and expire captcha challenges
    - Authorize a post submission (ban check, then captcha)
    """

    def __init__(
        self,
        db_manager: DBManager,
        auth_manager: AuthManager,
        captcha_generator: Optional[CaptchaGenerator] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize ModerationManager.

        Args:
            db_manager: DBManager instance for database operations
            auth_manager: AuthManager instance for privilege checks
            captcha_generator: Generator for challenge images
            clock: Returns the current UTC time
        """
        self.db = db_manager
        self.auth = auth_manager
        self.captchas = captcha_generator or CaptchaGenerator()
        self.clock = clock

    # Bans

    def find_active_ban(self, ip: str) -> Optional[Ban]:
        """
        Return the most recent unexpired ban whose network contains ``ip``.

        Args:
            ip: Requester's address

        Returns:
            The matching Ban, or None

        Raises:
            ValidationError: If ``ip`` is not an address
            StorageFailure: If the lookup fails
        """
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            raise ValidationError(f"Invalid address: {ip!r}")

        try:
            bans = self.db.get_bans_active_at(self.clock())
        except SQLAlchemyError as e:
            raise StorageFailure(f"Ban lookup failed: {e}")

        for ban in bans:
            network = ipaddress.ip_network(ban.ip, strict=False)
            if network.version == address.version and address in network:
                return ban
        return None

    def check_ban(self, ip: str) -> None:
        """
        Raises:
            Banned: If an active ban covers ``ip``
        """
        ban = self.find_active_ban(ip)
        if ban is not None:
            logger.info(f"Rejected post from banned address {ip} (ban on {ban.ip})")
            raise Banned(ban.reason)

    def ban_address(
        self,
        subnet: str,
        reason: str,
        duration: timedelta,
        session_id: Optional[str],
    ) -> Ban:
        """
        Ban an address or subnet.

        Args:
            subnet: Address or CIDR network, e.g. ``203.0.113.7`` or ``2001:db8::/32``
            reason: Reason shown to the banned poster (1-256 characters)
            duration: How long the ban lasts
            session_id: Moderator session issuing the ban

        Returns:
            Ban: Created ban

        Raises:
            AuthenticationError: If the session is missing or expired
            ValidationError: If a field is invalid
        """
        moderator = self.auth.require_privilege(session_id, "mod")

        try:
            network = ipaddress.ip_network(subnet, strict=False)
        except ValueError:
            raise ValidationError(f"Invalid address or subnet: {subnet!r}")
        if not reason or len(reason) > 256:
            raise ValidationError("Ban reason must be 1-256 characters")
        if duration <= timedelta(0):
            raise ValidationError("Ban duration must be positive")

        ban = Ban(ip=str(network), reason=reason, created_at=self.clock(), duration=duration)
        try:
            self.db.save_ban(ban)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to save ban: {e}")

        logger.info(f"{moderator.name} banned {network} until {ban.expires_at}: {reason}")
        return ban

    def list_bans(self) -> List[Ban]:
        """Return the bans in effect now, newest first."""
        try:
            return self.db.get_bans_active_at(self.clock())
        except SQLAlchemyError as e:
            raise StorageFailure(f"Ban lookup failed: {e}")

    # Captchas

    def issue_captcha(self) -> CaptchaChallenge:
        """
        Create and store a new challenge for a page view.

        Returns:
            CaptchaChallenge with the id the client must send back
        """
        image = self.captchas.generate()
        captcha = Captcha(
            id=str(uuid.uuid4()),
            solution=image.solution.lower(),
            created_at=self.clock(),
        )
        try:
            self.db.save_captcha(captcha)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to store captcha: {e}")

        logger.debug(f"Issued captcha {captcha.id}")
        return CaptchaChallenge(id=captcha.id, png=image.png)

    def verify_captcha(self, captcha_id: str, answer: Optional[str]) -> bool:
        """
        Check an answer and consume the challenge.

        The challenge is deleted whether or not the answer matches, so each
        challenge can be tried once. Unknown or already-used ids verify as
        False.
        """
        try:
            solution = self.db.consume_captcha(captcha_id)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Captcha verification failed: {e}")

        if solution is None:
            return False
        return (answer or "").strip().lower() == solution

    def purge_expired_captchas(self, max_age: timedelta = timedelta(hours=1)) -> int:
        """Delete challenges that were never answered. Returns the count."""
        try:
            count = self.db.delete_captchas_before(self.clock() - max_age)
        except SQLAlchemyError as e:
            raise StorageFailure(f"Captcha purge failed: {e}")

        if count:
            logger.info(f"Purged {count} unanswered captchas")
        return count

    # Write-path gate

    def authorize_post(self, ip: str, captcha_id: Optional[str], answer: Optional[str]) -> None:
        """
        Decide whether a post submission may proceed.

        Raises:
            Banned: If the address is banned
            MissingOrInvalidCaptchaID: If the token is absent or malformed,
                or the answer does not match
        """
        self.check_ban(ip)

        if not captcha_id:
            raise MissingOrInvalidCaptchaID()
        try:
            captcha_id = str(uuid.UUID(captcha_id))
        except ValueError:
            raise MissingOrInvalidCaptchaID()

        if not self.verify_captcha(captcha_id, answer):
            logger.info(f"Captcha {captcha_id} failed for {ip}")
            raise MissingOrInvalidCaptchaID()
