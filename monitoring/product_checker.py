"""
Product Checker

Fetches a product page over plain HTTP and detects availability, name and
price with BeautifulSoup. A product counts as available when its buy button
is rendered.
"""

import logging
import requests
from bs4 import BeautifulSoup

from config.models import DEFAULT_PRODUCT_NAME, ProductCheckResult
from utils.errors import ProductCheckError
from utils.retry import retry

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)
REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "uk-UA,uk;q=0.9,en-US;q=0.8,en;q=0.7",
}
REQUEST_TIMEOUT = 10
MIN_HTML_LENGTH = 100

BUY_BUTTON_SELECTOR = ".btn-primary.buy"
NAME_SELECTORS = [
    "h1.product-title",
    'h1[itemprop="name"]',
    ".product-name",
    "h1",
]
PRICE_SELECTORS = [
    ".new_price_card_product",
    ".price",
    '[itemprop="price"]',
    ".product-price",
]


def _first_text(soup, selectors):
    for selector in selectors:
        element = soup.select_one(selector)
        if element:
            text = element.get_text(strip=True)
            if text:
                return text
    return ""


def detect(html_content, url):
    """
    Parse a product page and extract its availability.

    Args:
        html_content (str): Raw page HTML
        url (str): Page URL, carried into the result

    Returns:
        ProductCheckResult: available/name/price for the page
    """
    soup = BeautifulSoup(html_content, "html.parser")

    name = _first_text(soup, NAME_SELECTORS) or DEFAULT_PRODUCT_NAME
    price = _first_text(soup, PRICE_SELECTORS)
    available = soup.select_one(BUY_BUTTON_SELECTOR) is not None

    return ProductCheckResult(url=url, available=available, name=name, price=price)


class ProductChecker:
    def __init__(self, max_retries=3, initial_delay=1.0, session=None, sleep=None):
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._session = session or requests.Session()
        self._retry_kwargs = {"sleep": sleep} if sleep else {}

    def fetch(self, url):
        """
        GET the product page, retrying transient failures.

        Raises:
            ProductCheckError: When every attempt failed
        """
        def attempt():
            try:
                resp = self._session.get(url, headers=REQUEST_HEADERS, timeout=REQUEST_TIMEOUT)
                resp.raise_for_status()
            except requests.Timeout as e:
                raise ProductCheckError(f"Request timed out after {REQUEST_TIMEOUT}s") from e
            except requests.RequestException as e:
                raise ProductCheckError(f"Error fetching {url}: {e}") from e

            html_content = resp.text
            if not html_content or len(html_content) < MIN_HTML_LENGTH:
                raise ProductCheckError("Received empty or invalid HTML")
            return html_content

        return retry(
            attempt,
            max_attempts=self.max_retries,
            initial_delay=self.initial_delay,
            backoff_multiplier=2,
            description=f"Fetch {url}",
            **self._retry_kwargs,
        )

    def check(self, url):
        """
        Check a single product URL.

        Returns:
            ProductCheckResult
        """
        logger.info(f"Checking product {url}")
        html_content = self.fetch(url)
        try:
            result = detect(html_content, url)
        except Exception as e:
            raise ProductCheckError(f"Error parsing {url}: {e}") from e

        logger.info(f"Product check complete: {result.name} available={result.available}")
        return result
