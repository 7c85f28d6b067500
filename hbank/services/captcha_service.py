"""hCaptcha token verification."""

import logging

from hbank.config import Settings
from hbank.services.http_client import HTTPClient

logger = logging.getLogger(__name__)


class CaptchaVerifier(HTTPClient):
    """Boolean gate in front of registration.

    ``verify`` returns False for a rejected token and lets ``HTTPClientError``
    propagate for transport failures; callers treat both as a refusal.
    """

    def __init__(self, settings: Settings) -> None:
        super().__init__(timeout=10.0)
        self._settings = settings

    def verify(self, token: str) -> bool:
        if not self._settings.captcha_enabled:
            return True
        if not token:
            return False

        body = self.post_form_json(
            self._settings.hcaptcha_verify_url,
            data={
                "secret": self._settings.hcaptcha_secret,
                "response": token,
                "sitekey": self._settings.hcaptcha_site_key,
            },
        )
        success = bool(body.get("success")) if isinstance(body, dict) else False
        if not success:
            logger.info(f"Captcha rejected: {body.get('error-codes') if isinstance(body, dict) else body}")
        return success
