"""
Fail-fast configuration and secrets validation
"""

import sys
from typing import List
from utils.config import get_config
from utils.structured_logging import get_structured_logger

logger = get_structured_logger(__name__)


class ConfigBootstrap:
    """Fail-fast configuration validator"""

    CRITICAL_SECRETS = [
        "DATABASE_URL",
        "JWT_SECRET",
        "COMMENTS_ENCRYPTION_KEY",
    ]

    def validate_startup_config(self) -> None:
        """Validate all required configuration on startup"""
        try:
            config = get_config()

            missing_critical = self._check_critical_secrets(config)
            if missing_critical:
                self._abort_startup(f"CRITICAL: Missing required secrets: {', '.join(missing_critical)}")
                return

            self._validate_secret_formats(config)
            self._validate_limits(config)

            logger.info("All configuration validation passed")

        except Exception as e:
            self._abort_startup(f"Configuration validation failed: {str(e)}")

    def _check_critical_secrets(self, config) -> List[str]:
        """Check critical secrets are present"""
        missing = []
        for secret in self.CRITICAL_SECRETS:
            value = getattr(config, secret.lower(), None)
            if not value or len(value.strip()) == 0:
                missing.append(secret)
        return missing

    def _validate_secret_formats(self, config) -> None:
        """Validate secret formats"""
        if config.environment == "production" and len(config.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters in production")

        if len(config.comments_encryption_key) != 64:
            raise ValueError("COMMENTS_ENCRYPTION_KEY must be 64 hex characters")

        if config.semantic_scorer_url and not config.semantic_scorer_url.startswith(('http://', 'https://')):
            raise ValueError("SEMANTIC_SCORER_URL must be an HTTP(S) URL")

    def _validate_limits(self, config) -> None:
        """Validate listing and query guards are coherent"""
        if config.default_page_size > config.max_page_size:
            raise ValueError("DEFAULT_PAGE_SIZE cannot exceed MAX_PAGE_SIZE")

        if config.min_query_length > config.max_query_length:
            raise ValueError("MIN_QUERY_LENGTH cannot exceed MAX_QUERY_LENGTH")

    def _abort_startup(self, message: str) -> None:
        """Abort application startup with error message"""
        logger.error(f"STARTUP ABORTED: {message}")
        sys.exit(1)


def validate_config_on_startup() -> None:
    """Entry point for startup config validation"""
    bootstrap = ConfigBootstrap()
    bootstrap.validate_startup_config()


# CLI script for ops validation
if __name__ == "__main__":
    print("Validating comment service configuration...")
    try:
        validate_config_on_startup()
        print("All configuration is valid!")
    except SystemExit:
        print("Configuration validation failed!")
        sys.exit(1)
