"""Configuration management for the code generator bot."""
import os
from dotenv import load_dotenv

from utils.code_generator import (
    ALPHANUMERIC_CHARS,
    DEFAULT_MAX_COLLISIONS,
    NUMERIC_CHARS,
    GeneratorOptions,
)

# Load environment variables from .env file
load_dotenv()


class Config:
    """Configuration class for bot settings."""

    # Discord Configuration
    DISCORD_BOT_TOKEN = os.getenv('DISCORD_BOT_TOKEN')
    ADMIN_CHANNEL_ID = int(os.getenv('ADMIN_CHANNEL_ID', 0))

    # Storage Configuration
    DATABASE_PATH = os.getenv('DATABASE_PATH', 'data/codes.db')
    EXPORT_DIR = os.getenv('EXPORT_DIR', 'data')

    # Generator Settings
    CODE_SPARSITY = float(os.getenv('CODE_SPARSITY', 1))
    CODE_MAX_COLLISIONS = int(os.getenv('CODE_MAX_COLLISIONS', DEFAULT_MAX_COLLISIONS))
    MAX_BATCH_SIZE = int(os.getenv('MAX_BATCH_SIZE', 10000))
    NUMERIC_CHARS = os.getenv('NUMERIC_CHARS', NUMERIC_CHARS)
    ALPHANUMERIC_CHARS = os.getenv('ALPHANUMERIC_CHARS', ALPHANUMERIC_CHARS)

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls):
        """Validate all required configuration values are present."""
        required_configs = {
            'DISCORD_BOT_TOKEN': cls.DISCORD_BOT_TOKEN,
            'ADMIN_CHANNEL_ID': cls.ADMIN_CHANNEL_ID,
        }

        missing = []
        for name, value in required_configs.items():
            if not value:
                missing.append(name)

        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        # Validate channel ID is a positive integer
        if cls.ADMIN_CHANNEL_ID <= 0:
            raise ValueError("ADMIN_CHANNEL_ID must be a valid positive integer")

        # Validate generator settings
        if cls.CODE_SPARSITY < 1:
            raise ValueError("CODE_SPARSITY must be at least 1")
        if cls.CODE_MAX_COLLISIONS < 1:
            raise ValueError("CODE_MAX_COLLISIONS must be at least 1")
        if cls.MAX_BATCH_SIZE < 1:
            raise ValueError("MAX_BATCH_SIZE must be at least 1")
        if not cls.NUMERIC_CHARS or not cls.ALPHANUMERIC_CHARS:
            raise ValueError("NUMERIC_CHARS and ALPHANUMERIC_CHARS must not be empty")

        return True

    @classmethod
    def generator_options(cls, **overrides) -> GeneratorOptions:
        """Build generator options from the configured defaults."""
        settings = {
            'numeric_chars': cls.NUMERIC_CHARS,
            'alphanumeric_chars': cls.ALPHANUMERIC_CHARS,
            'sparsity': cls.CODE_SPARSITY,
            'max_collisions': cls.CODE_MAX_COLLISIONS,
        }
        settings.update(overrides)
        return GeneratorOptions(**settings)


# Create config instance
config = Config()
