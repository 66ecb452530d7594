"""Ask providers to report on themselves through their gateway plugin."""

import logging

import requests
from lxml import etree

from plnstage.domain.models import PingResult, Provider

logger = logging.getLogger(__name__)

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def _first(xml: etree._Element, xpath: str) -> str | None:
    values = xml.xpath(xpath)
    if not values:
        return None
    value = values[0]
    text = value if isinstance(value, str) else value.text
    return text.strip() if text and text.strip() else None


def parse_ping_response(status: int, body: bytes) -> PingResult:
    """Build a PingResult from a gateway response."""
    try:
        xml = etree.fromstring(body, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        return PingResult(http_status=status, parsed=False, error=f"Cannot parse ping response: {e}")

    return PingResult(
        http_status=status,
        parsed=True,
        software_version=_first(xml, "//release"),
        terms_accepted=_first(xml, "//terms/@termsAccepted"),
        title=_first(xml, "//title"),
    )


class Pinger:
    """HTTP client for provider gateway pings."""

    def __init__(self, timeout: float = 30, user_agent: str = "PlnStagingBot 1.0"):
        self.timeout = timeout
        self.user_agent = user_agent

    def ping(self, provider: Provider) -> PingResult:
        """Ping one provider. Transport failures are reported, not raised."""
        url = provider.gateway_url
        if url is None:
            return PingResult(error=f"Provider {provider.uuid} has no URL")

        logger.info(f"Pinging {provider.uuid} at {url}")
        try:
            response = requests.get(
                url,
                timeout=self.timeout,
                allow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/xml,text/xml,*/*;q=0.1",
                },
            )
        except requests.RequestException as e:
            logger.error(f"Cannot ping {provider.url}: {e}")
            return PingResult(error=str(e))

        if response.status_code != 200:
            return PingResult(
                http_status=response.status_code,
                error=f"HTTP {response.status_code} {response.reason}",
            )
        return parse_ping_response(response.status_code, response.content)
