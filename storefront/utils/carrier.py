#carrier.py
#Client for the national carrier rate API (live quotes for the "correo" method).

import logging
import time

import requests

from storefront.errors import CarrierQuoteError

QUOTE_FAILED_MESSAGE = 'Could not quote carrier shipping. Choose another shipping method or contact support.'


class CarrierRateClient:
    """Quotes a package to a destination postal code.

    Successful quotes are cached per (postal code, dimensions) for ``cache_ttl`` seconds.
    """

    def __init__(self, quote_url, timeout=10, cache_ttl=600, session=None):
        self.quote_url = quote_url
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.session = session or requests.Session()
        self._cache = {}

    def _cache_key(self, postal_code, dimensions):
        return (
            str(postal_code).strip(),
            dimensions.get('width'), dimensions.get('height'),
            dimensions.get('length'), dimensions.get('weight'),
        )

    def _prune_cache(self):
        now = time.monotonic()
        for key in [k for k, (stored_at, _) in self._cache.items() if now - stored_at >= self.cache_ttl]:
            self._cache.pop(key, None)

    def quote(self, postal_code, dimensions):
        """Return ``{cost, options, estimated_delivery}`` or raise CarrierQuoteError."""
        if not self.quote_url:
            raise CarrierQuoteError(QUOTE_FAILED_MESSAGE, details={'reason': 'carrier not configured'})
        if not postal_code or len(str(postal_code).strip()) < 4:
            raise CarrierQuoteError('A valid postal code is required to quote carrier shipping.')

        key = self._cache_key(postal_code, dimensions)
        cached = self._cache.get(key)
        if cached:
            if time.monotonic() - cached[0] < self.cache_ttl:
                logging.info(f"[Carrier] cache hit for {key}")
                return cached[1]
            self._cache.pop(key, None)

        body = {'destinationPostalCode': str(postal_code).strip(), 'dimensions': dimensions}
        logging.info(f"[Carrier] Requesting quote | url={self.quote_url} | body={body}")
        try:
            response = self.session.post(self.quote_url, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logging.error(f"[Carrier] Quote request failed: {e}")
            raise CarrierQuoteError(QUOTE_FAILED_MESSAGE, details={'reason': str(e)})

        cost = data.get('defaultCost')
        if not data.get('success') or not isinstance(cost, (int, float)) or cost <= 0:
            logging.error(f"[Carrier] Quote response without a valid option: {data}")
            raise CarrierQuoteError(QUOTE_FAILED_MESSAGE, details={'reason': 'no valid option'})

        selected = data.get('selectedOption') or {}
        quote = {
            'cost': float(cost),
            'options': data.get('options') or [],
            'estimated_delivery': selected.get('estimatedDelivery'),
        }
        self._prune_cache()
        self._cache[key] = (time.monotonic(), quote)
        logging.info(f"[Carrier] Quote | postal_code={postal_code} | cost={quote['cost']} | eta={quote['estimated_delivery']}")
        return quote
