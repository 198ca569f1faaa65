# dealwatch/feeds/fetcher.py

"""Feed transport: fetch one complete partner feed payload."""

import logging
import time

from curl_cffi import requests as curl_requests

from dealwatch.config.settings import Settings

logger = logging.getLogger("dealwatch.feeds")


class FeedFetchError(Exception):
    """The feed could not be downloaded after all retries."""


class FeedFetcher:
    """Download feed payloads through a browser-impersonating session.

    One successful GET yields one complete payload; there is no
    pagination or authentication handling.
    """

    def __init__(self) -> None:
        self.settings = Settings()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def close(self) -> None:
        self.session.close()

    def fetch(self, url: str) -> bytes:
        """GET ``url`` with retries and linear back-off.

        Raises :class:`FeedFetchError` when every attempt fails.
        """
        if not url:
            raise FeedFetchError("no feed URL configured")

        last_error = ""
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    url,
                    headers=self.settings.DEFAULT_HEADERS,
                    timeout=self._request_timeout,
                )
                if resp.status_code == 200:
                    logger.info(
                        "Fetched feed %s (%d bytes)",
                        url, len(resp.content),
                    )
                    return resp.content
                last_error = f"HTTP {resp.status_code}"
                logger.warning(
                    "Feed %s returned HTTP %d on attempt %d",
                    url,
                    resp.status_code,
                    attempt + 1,
                )
            except Exception as exc:
                last_error = str(exc)
                logger.warning(
                    "Feed request error on attempt %d: %s",
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
            time.sleep(self.settings.REQUEST_DELAY * (attempt + 1))

        raise FeedFetchError(
            f"could not fetch {url} after "
            f"{self.settings.MAX_RETRIES} attempts: {last_error}"
        )
