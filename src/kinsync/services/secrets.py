"""
Secret Manager service for retrieving API credentials.
"""

import logging
import os
from typing import Dict, Optional
from google.cloud import secretmanager

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Environment variable -> Secret Manager secret name
CREDENTIAL_SECRETS = {
    "PCO_APP_ID": "pco-app-id",
    "PCO_SECRET": "pco-secret",
    "FIBERY_TOKEN": "fibery-token",
}


class SecretManagerService:
    """Service for retrieving secrets from Google Secret Manager."""

    def __init__(self, project_id: Optional[str] = None, client=None):
        """Initialize Secret Manager service."""
        self.project_id = project_id or os.getenv("GOOGLE_CLOUD_PROJECT")
        if not self.project_id:
            raise ConfigurationError("GOOGLE_CLOUD_PROJECT environment variable must be set")

        self.client = client or secretmanager.SecretManagerServiceClient()
        self._cache: Dict[str, str] = {}

    def get_secret(self, secret_name: str, version: str = "latest") -> str:
        """Retrieve a secret value from Secret Manager."""
        cache_key = f"{secret_name}:{version}"

        if cache_key in self._cache:
            return self._cache[cache_key]

        try:
            secret_path = f"projects/{self.project_id}/secrets/{secret_name}/versions/{version}"
            response = self.client.access_secret_version(request={"name": secret_path})
            secret_value = response.payload.data.decode("UTF-8")

            # Cache the value
            self._cache[cache_key] = secret_value
            logger.info(f"Retrieved secret: {secret_name}")
            return secret_value

        except Exception as e:
            logger.error(f"Failed to retrieve secret {secret_name}: {e}")
            raise

    def get_api_credentials(self) -> Dict[str, str]:
        """Get Planning Center and Fibery credentials, each falling back to its environment variable."""
        credentials = {}
        for env_name, secret_name in CREDENTIAL_SECRETS.items():
            try:
                credentials[env_name] = self.get_secret(secret_name)
            except Exception as e:
                logger.warning(f"Secret {secret_name} unavailable, using {env_name} from environment: {e}")
                credentials[env_name] = os.getenv(env_name, "")
        return credentials
