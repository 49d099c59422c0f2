"""ChatGPT backend API client with bearer authentication and retry logic."""

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

import requests
import urllib3
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from models import ExportError

logger = logging.getLogger('chatgpt_markdown_exporter.client')


class CredentialError(ExportError):
    """Raised when no access token is available."""
    pass


class ConversationIdError(ExportError):
    """Raised when a conversation identifier cannot be derived."""
    pass


def resolve_conversation_id(value: Optional[str]) -> str:
    """
    Derive a conversation identifier from a bare id or a conversation URL.

    Args:
        value: Identifier or URL such as "https://chatgpt.com/c/<id>"

    Returns:
        The last non-empty path segment of a URL, or the stripped value

    Raises:
        ConversationIdError: If nothing usable is found
    """
    if not value or not value.strip():
        raise ConversationIdError("No conversation id or URL given")

    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme in ('http', 'https'):
        segments = [segment for segment in parsed.path.split('/') if segment]
        if not segments:
            raise ConversationIdError(f"Could not find a conversation id in URL: {value}")
        return segments[-1]

    return value


class ChatGPTClient:
    """ChatGPT backend API client with bearer authentication and retries."""

    def __init__(
        self,
        base_url: str = 'https://chatgpt.com',
        access_token: Optional[str] = None,
        verify_ssl: bool = True,
        timeout: int = 30,
        max_retries: int = 3,
        retry_backoff_factor: float = 2.0,
        rate_limit: float = 0.0
    ):
        """
        Initialize the client with a session-bearer credential.

        Args:
            base_url: ChatGPT base URL
            access_token: Session access token sent as a bearer credential
            verify_ssl: Whether to verify SSL certificates
            timeout: HTTP request timeout in seconds
            max_retries: Maximum retry attempts for transient errors
            retry_backoff_factor: Exponential backoff factor
            rate_limit: Minimum seconds between requests (0.0 = no rate limiting)

        Raises:
            CredentialError: If no access token is given
        """
        if not access_token or '${' in access_token:
            raise CredentialError(
                "No access token available. Set chatgpt.access_token or the "
                "CHATGPT_ACCESS_TOKEN environment variable."
            )

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff_factor = retry_backoff_factor
        self.rate_limit = rate_limit
        self.last_request_time = 0.0

        self.session = requests.Session()
        self.session.headers['Authorization'] = f'Bearer {access_token}'
        self.session.headers['Accept'] = '*/*'

        self.session.verify = verify_ssl
        if not verify_ssl:
            logger.warning("SSL verification disabled - this is insecure!")
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=retry_backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        logger.info(f"Initialized ChatGPT client with Bearer auth for {self.base_url}")
        logger.debug(f"Client configured with timeout={timeout}s, max_retries={max_retries}, "
                     f"backoff_factor={retry_backoff_factor}, rate_limit={rate_limit}s")

    def _enforce_rate_limit(self) -> None:
        """Enforce rate limiting if configured."""
        if self.rate_limit <= 0:
            return

        time_since_last = time.time() - self.last_request_time
        if time_since_last < self.rate_limit:
            sleep_time = self.rate_limit - time_since_last
            logger.debug(f"Rate limiting: sleeping for {sleep_time:.2f}s")
            time.sleep(sleep_time)

        self.last_request_time = time.time()

    def _make_request(
        self,
        method: str,
        endpoint: str,
        full_url: Optional[str] = None,
        expected_status: Optional[int] = 200,
        **kwargs
    ) -> requests.Response:
        """
        Make an HTTP request with rate limiting and error logging.

        Args:
            method: HTTP method
            endpoint: API path (e.g., "/backend-api/conversation/<id>")
            full_url: Optional full URL (overrides base_url + endpoint)
            expected_status: Expected success status code
            **kwargs: Additional arguments for requests

        Raises:
            requests.exceptions.HTTPError: For HTTP errors
            requests.exceptions.Timeout: For timeout errors
            requests.exceptions.RequestException: For other request errors
        """
        self._enforce_rate_limit()

        url = full_url if full_url else urljoin(self.base_url + '/', endpoint.lstrip('/'))

        start_time = time.time()
        logger.debug(f"API Request: {method} {url}")

        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            elapsed = time.time() - start_time
            logger.debug(f"API Response: {response.status_code} {url} ({elapsed:.3f}s)")

            if expected_status and response.status_code != expected_status:
                response.raise_for_status()

            return response

        except requests.exceptions.Timeout:
            logger.error(f"Request timeout after {self.timeout}s: {method} {url}")
            raise

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            logger.error(f"HTTP Error {status_code}: {method} {url}")

            if e.response is not None:
                try:
                    error_data = e.response.json()
                    logger.debug(f"Error details: {json.dumps(error_data, indent=2)}")
                except ValueError:
                    logger.debug(f"Error response: {e.response.text[:500]}")

            raise

        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {method} {url} - {e}")
            raise

    def fetch_conversation(self, conversation_id: str) -> Dict[str, Any]:
        """
        Fetch the raw conversation record.

        Args:
            conversation_id: Conversation identifier

        Returns:
            Conversation JSON as a dictionary
        """
        response = self._make_request('GET', f'/backend-api/conversation/{conversation_id}')
        data = response.json()
        logger.info(
            f"Fetched conversation '{data.get('title') or conversation_id}' "
            f"with {len(data.get('mapping') or {})} nodes"
        )
        return data

    def get_attachment_metadata(self, conversation_id: str, file_id: str) -> Dict[str, Any]:
        """
        Request attachment metadata, including the signed download URL.

        Args:
            conversation_id: Conversation the attachment belongs to
            file_id: Raw file identifier (asset pointer without scheme)

        Returns:
            Metadata dictionary with 'download_url' and usually 'file_name'
        """
        response = self._make_request(
            'GET',
            f'/backend-api/conversation/{conversation_id}/attachment/{file_id}/download',
            headers={'Accept': 'application/json'}
        )
        return response.json()

    def download_file(self, download_url: str, return_metadata: bool = False) -> Union[bytes, Tuple[bytes, Dict[str, Any]]]:
        """
        Download a binary payload from a signed URL.

        The bearer header is not sent; the URL carries its own signature.

        Args:
            download_url: Signed download URL
            return_metadata: If True, return tuple of (data, response_metadata)

        Returns:
            Binary data, or tuple with content type and length metadata
        """
        return self._download_with_retry(download_url, return_metadata=return_metadata)

    def _download_with_retry(
        self,
        url: str,
        expected_status: int = 200,
        return_metadata: bool = False
    ) -> Union[bytes, Tuple[bytes, Dict[str, Any]]]:
        """
        Download a file with exponential backoff on transient errors.

        Raises:
            requests.exceptions.RequestException: After a permanent error or the last retry
        """
        headers = {
            'Authorization': None,
            'Accept': 'image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8'
        }

        for attempt in range(self.max_retries + 1):
            try:
                response = self._make_request(
                    'GET', '', full_url=url, expected_status=expected_status, headers=headers
                )
                binary_data = response.content

                if return_metadata:
                    metadata = {
                        'content_type': response.headers.get('Content-Type'),
                        'content_length': len(binary_data),
                        'timestamp': time.time()
                    }
                    return binary_data, metadata
                return binary_data

            except requests.exceptions.RequestException as e:
                if not self._is_transient_error(e) or attempt >= self.max_retries:
                    if attempt > 0:
                        logger.error(f"Download failed after {attempt + 1} attempts: {url}")
                    raise

                wait_time = self.retry_backoff_factor * (2 ** attempt)
                logger.warning(
                    f"Download attempt {attempt + 1} failed ({str(e)}), "
                    f"retrying in {wait_time:.1f}s: {url}"
                )
                time.sleep(wait_time)

        raise requests.exceptions.RequestException(f"Download failed after {self.max_retries + 1} attempts: {url}")

    def _is_transient_error(self, exception: Exception) -> bool:
        """Determine if an error is transient (retry) or permanent (fail fast)."""
        response = getattr(exception, 'response', None)
        if response is not None:
            if response.status_code in [429, 500, 502, 503, 504]:
                return True
            if response.status_code in [400, 401, 403, 404]:
                return False

        if isinstance(exception, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
            return True

        logger.debug(f"Treating error as permanent (no retry): {type(exception).__name__}")
        return False

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'ChatGPTClient':
        """
        Initialize a client from the configuration dictionary.

        Args:
            config: Configuration with 'chatgpt' and 'advanced' sections
        """
        chatgpt_config = config.get('chatgpt', {}) or {}
        advanced_config = config.get('advanced', {}) or {}

        return cls(
            base_url=chatgpt_config.get('base_url', 'https://chatgpt.com'),
            access_token=chatgpt_config.get('access_token'),
            verify_ssl=chatgpt_config.get('verify_ssl', True),
            timeout=advanced_config.get('request_timeout', 30),
            max_retries=advanced_config.get('max_retries', 3),
            retry_backoff_factor=advanced_config.get('retry_backoff_factor', 2.0),
            rate_limit=advanced_config.get('rate_limit', 0.0)
        )


__all__ = ['ChatGPTClient', 'ConversationIdError', 'CredentialError', 'resolve_conversation_id']
