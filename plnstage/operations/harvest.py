"""Fetch deposit payloads from providers."""

import logging
from pathlib import Path

import httpx

from plnstage.domain.errors import HarvestError
from plnstage.domain.models import Deposit

logger = logging.getLogger(__name__)


def size_difference(reported: int, declared: int) -> float:
    """Relative difference between two sizes, as a fraction of the larger."""
    largest = max(reported, declared)
    if largest == 0:
        return 0.0
    return abs(reported - declared) / largest


def create_client(timeout: float, user_agent: str) -> httpx.Client:
    """HTTP client shared by the harvest and deposit stages."""
    return httpx.Client(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent},
    )


class Harvester:
    """Download deposit payloads with a size sanity check first.

    Providers report sizes that are only estimates, so a HEAD response that
    disagrees with the declared size by more than ``size_tolerance`` is logged
    on the deposit but does not stop the download.
    """

    def __init__(
        self,
        client: httpx.Client,
        size_tolerance: float = 0.08,
        chunk_size: int = 64 * 1024,
    ):
        self.client = client
        self.size_tolerance = size_tolerance
        self.chunk_size = chunk_size

    def check_size(self, deposit: Deposit) -> str | None:
        """Compare the declared size with the size the provider reports.

        Returns:
            A warning message when the sizes diverge beyond tolerance, else None

        Raises:
            HarvestError: If HEAD fails or reports no usable Content-Length
        """
        try:
            head = self.client.head(deposit.url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise HarvestError(f"HTTP HEAD request failed for {deposit.url}: {e}") from e

        if head.status_code != 200:
            raise HarvestError(
                f"HTTP HEAD request cannot check file size: HTTP {head.status_code} "
                f"- {head.reason_phrase} - {deposit.url}"
            )

        reported = head.headers.get("Content-Length")
        if reported is None or not reported.strip().isdigit():
            headers = "\n".join(f"{k}: {v}" for k, v in head.headers.items())
            raise HarvestError(
                f"HTTP HEAD response does not include file size\n{deposit.url}\n"
                f"{head.status_code} {head.reason_phrase}\n{headers}"
            )

        reported_size = int(reported)
        if size_difference(reported_size, deposit.size) > self.size_tolerance:
            message = (
                f"Expected file size {deposit.size} is not close to reported size {reported_size}"
            )
            logger.warning(f"Harvest - {deposit.url} - {message}")
            return message
        return None

    def fetch(self, deposit: Deposit, dest: Path) -> str | None:
        """Stream the payload to ``dest`` in fixed-size chunks.

        Returns:
            The response Content-Type, if any

        Raises:
            HarvestError: If the request fails or the body is empty
        """
        try:
            with self.client.stream("GET", deposit.url) as resp:
                logger.info(
                    f"Harvest - {deposit.url} - HTTP {resp.status_code} - "
                    f"{resp.headers.get('Content-Length')}"
                )
                if resp.status_code != 200:
                    raise HarvestError(
                        f"Harvest - {deposit.url} - HTTP {resp.status_code} - {resp.reason_phrase}"
                    )

                written = 0
                with dest.open("wb") as f:
                    for chunk in resp.iter_bytes(chunk_size=self.chunk_size):
                        f.write(chunk)
                        written += len(chunk)
                content_type = resp.headers.get("Content-Type")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise HarvestError(f"Harvest - {deposit.url} - {e}") from e

        if written == 0:
            raise HarvestError(f"Harvest - {deposit.url} - response body was empty")
        logger.info(f"Wrote {written} bytes to {dest}")
        return content_type
