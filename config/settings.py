"""Configuration management for EscrowBot."""
import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Configuration settings for EscrowBot.

    This class centralizes all configuration values, replacing hardcoded
    values throughout the codebase.
    """

    # Discord Configuration (required)
    discord_token: str

    # Database Configuration
    db_path: str = 'escrow.db'

    # Ledger rules
    minimum_reserve: int = 1_000_000  # 1M

    # Output
    history_max_output: int = 20

    # Owner Configuration
    owner_id: int | None = None
    admin_role_name: str = 'admin'
    command_prefix: str = '$'

    @classmethod
    def load(cls) -> 'Settings':
        """Load settings from environment variables.

        Returns:
            Settings: A Settings instance with values from environment variables.

        Raises:
            ValueError: If required environment variables are not set or a
                numeric variable cannot be parsed.
        """
        discord_token = os.getenv('DISCORD_TOKEN')
        if not discord_token:
            raise ValueError("DISCORD_TOKEN environment variable is required")

        settings = cls(discord_token=discord_token)

        db_path = os.getenv('ESCROW_DB_PATH')
        if db_path:
            settings.db_path = db_path

        reserve = os.getenv('ESCROW_MINIMUM_RESERVE')
        if reserve:
            settings.minimum_reserve = _parse_int('ESCROW_MINIMUM_RESERVE', reserve)
            if settings.minimum_reserve < 0:
                raise ValueError("ESCROW_MINIMUM_RESERVE must not be negative")

        owner_id = os.getenv('ESCROW_OWNER_ID')
        if owner_id:
            settings.owner_id = _parse_int('ESCROW_OWNER_ID', owner_id)

        admin_role = os.getenv('ESCROW_ADMIN_ROLE')
        if admin_role:
            settings.admin_role_name = admin_role

        history_max = os.getenv('ESCROW_HISTORY_MAX_OUTPUT')
        if history_max:
            settings.history_max_output = _parse_int('ESCROW_HISTORY_MAX_OUTPUT', history_max)
            if settings.history_max_output < 1:
                raise ValueError("ESCROW_HISTORY_MAX_OUTPUT must be at least 1")

        prefix = os.getenv('ESCROW_COMMAND_PREFIX')
        if prefix:
            settings.command_prefix = prefix

        return settings


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")
