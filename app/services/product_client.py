"""
HTTP Client for the catalog (Product Service) with retry logic
"""
import logging

import httpx
from typing import Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.config import settings
from app.schemas.product import ProductDefinition

logger = logging.getLogger(__name__)


class ProductServiceError(Exception):
    """Base exception for Product Service errors"""
    pass


class ProductNotFoundError(ProductServiceError):
    """Product not found"""
    pass


class ProductServiceUnavailableError(ProductServiceError):
    """Product Service is unavailable"""
    pass


class ProductServiceClient:
    """Client for reading product definitions from the catalog"""

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or settings.PRODUCT_SERVICE_URL
        self.timeout = 5.0  # 5 seconds timeout
        self.transport = transport

    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True
    )
    async def _fetch_product(self, product_id: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            return await client.get(f"{self.base_url}/products/{product_id}")

    async def get_product(self, product_id: str) -> ProductDefinition:
        """
        Get product definition by ID, including its checkout required fields

        Args:
            product_id: Product ID

        Returns:
            Product definition

        Raises:
            ProductNotFoundError: If product not found
            ProductServiceUnavailableError: If service is unavailable
        """
        try:
            response = await self._fetch_product(product_id)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            logger.error(f"✗ Error calling Product Service: {e}")
            raise ProductServiceUnavailableError(f"Product Service unavailable: {e}")

        if response.status_code == 200:
            return ProductDefinition.model_validate(response.json())
        elif response.status_code == 404:
            raise ProductNotFoundError(f"Product {product_id} not found")
        else:
            raise ProductServiceError(f"Unexpected status code: {response.status_code}")
